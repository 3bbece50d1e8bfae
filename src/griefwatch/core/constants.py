"""
Griefwatch - Constants

Game constants used by the behavioral analytics engine: team labels,
tick rate, equipment prices and the CS2 money rules the economy
reconstruction is built on.
"""

from enum import StrEnum


class Team(StrEnum):
    """Team a player belongs to in a snapshot."""

    CT = "CT"
    T = "T"
    SPECTATOR = "SPECTATOR"

    @classmethod
    def parse(cls, value: object) -> "Team":
        """Map loose parser labels ("ct", 3, "TERRORIST", ...) to a Team."""
        if isinstance(value, Team):
            return value
        text = str(value).strip().upper()
        if text in ("CT", "3", "COUNTER-TERRORIST", "COUNTERTERRORIST"):
            return cls.CT
        if text in ("T", "2", "TERRORIST", "TERRORISTS"):
            return cls.T
        return cls.SPECTATOR


PLAYING_TEAMS = (Team.CT, Team.T)

# CS2 runs every server at 64 tick with subtick timestamps
CS2_TICK_RATE = 64

# Equipment prices (CS2). Keys are normalized weapon identifiers.
WEAPON_PRICES: dict[str, int] = {
    # Rifles
    "ak47": 2700,
    "m4a1": 3100,
    "m4a4": 3100,
    "m4a1_silencer": 2900,
    "aug": 3300,
    "sg556": 3000,
    "galil": 1800,
    "famas": 2050,
    # Snipers
    "awp": 4750,
    "ssg08": 1700,
    "scar20": 5000,
    "g3sg1": 5000,
    # SMGs
    "mac10": 1050,
    "mp9": 1250,
    "mp7": 1500,
    "ump45": 1200,
    "p90": 2350,
    "pp_bizon": 1400,
    "mp5": 1500,
    # Shotguns
    "nova": 1050,
    "xm1014": 2000,
    "sawedoff": 1100,
    "mag7": 1300,
    # Pistols
    "glock": 200,
    "usp_silencer": 200,
    "p250": 300,
    "tec9": 500,
    "five_seven": 500,
    "cz75": 500,
    "deagle": 700,
    "r8_revolver": 600,
    "p2000": 200,
    "dual_berettas": 300,
    # Heavy
    "negev": 1700,
    "m249": 5200,
    # Grenades
    "hegrenade": 300,
    "flashbang": 200,
    "smokegrenade": 300,
    "molotov": 400,
    "incgrenade": 600,
    "decoy": 50,
    # Other
    "zeus": 200,
    "knife": 0,
    "c4": 0,
}

# Alternative identifiers emitted by different parsers
WEAPON_ALIASES: dict[str, str] = {
    "galilar": "galil",
    "m4a1s": "m4a1_silencer",
    "cz75a": "cz75",
    "fiveseven": "five_seven",
    "elite": "dual_berettas",
    "bizon": "pp_bizon",
    "mp5sd": "mp5",
    "usp": "usp_silencer",
    "usps": "usp_silencer",
    "hkp2000": "p2000",
    "revolver": "r8_revolver",
    "taser": "zeus",
    "inferno": "molotov",
    "smoke": "smokegrenade",
    "flash": "flashbang",
    "he": "hegrenade",
    "incendiary": "incgrenade",
}

ARMOR_PRICE = 650
HELMET_PRICE = 350
DEFUSER_PRICE = 400

# Anything priced at or above this is treated as a real primary (not a pistol)
PISTOL_PRICE_CEILING = 1000

# CS2 money rules
PISTOL_ROUND_MONEY = 800
WIN_BONUS = 3250
BASE_LOSS_BONUS = 1400
LOSS_BONUS_INCREMENT = 500
MAX_LOSS_BONUS = 3400
MAX_MONEY = 10000

# Leftover-money heuristics used when a round's previous money is unknown
LEFTOVER_AFTER_WIN = 1500
LEFTOVER_AFTER_LOSS = 750
# Share of previous money assumed spent (win / loss)
SPEND_SHARE_AFTER_WIN = 0.7
SPEND_SHARE_AFTER_LOSS = 0.5

# Spend normalizer for detector scores (roughly a full rifle buy)
SPEND_NORMALIZER = 5000
HOARD_NORMALIZER = 10000

# Names that identify world / environment damage sources
WORLD_ATTACKER_NAMES = frozenset({"world", "<world>", "environment", ""})
