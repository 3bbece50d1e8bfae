"""
Griefwatch CLI Entry Point

Allows running the package as a module: python -m griefwatch
"""

from griefwatch.cli import main

if __name__ == "__main__":
    main()
