# palmap/config.py
import os
from dataclasses import dataclass
from pathlib import Path

from palmap.errors import ConfigError

# Where we persist bindings + guild colors
STATE_PATH = os.getenv("STATE_PATH", "data/palmap_state.json")
Path(STATE_PATH).parent.mkdir(parents=True, exist_ok=True)

ASSETS_DIR = Path(os.getenv("ASSETS_DIR", "assets"))

# Base map; MAP_IMAGE lets you point at another export of the same world map
MAP_IMAGE = os.getenv("MAP_IMAGE") or str(ASSETS_DIR / "T_WorldMap.png")

ICON_PATHS = {
    "camp": str(ASSETS_DIR / "T_icon_compass_camp.png"),
    "player": str(ASSETS_DIR / "T_icon_compass_00.png"),
}

# Poll period for the live map loop
INTERVAL_MINUTES = float(os.getenv("INTERVAL_MINUTES", "10"))

# Rendered snapshot is always square
OUTPUT_SIZE = 4096
# Resolution the map->pixel calibration was fitted on
REFERENCE_SIZE = 8192

CAMP_ICON_SIZE = 128
PLAYER_ICON_SIZE = 112
JPEG_QUALITY = 85

# Fixed guild palette; order matters (first unused wins)
PALETTE = [
    "#e6194b", "#3cb44b", "#ffe119", "#4363d8",
    "#f58231", "#911eb4", "#46f0f0", "#f032e6",
    "#bcf60c", "#fabebe", "#008080", "#e6beff",
    "#9a6324", "#fffac8", "#800000", "#aaffc3",
]
NO_GUILD_COLOR = "#d0d0d0"

# Basic auth user expected by the REST API of the dedicated server
PLAYERS_API_USER = "admin"

HTTP_TIMEOUT_SEC = 20.0
USER_AGENT = "PalMap/live-map"


@dataclass(frozen=True)
class ApiConfig:
    players_url: str
    guilds_url: str
    admin_password: str
    guilds_token: str


def load_api_config() -> ApiConfig:
    """Read upstream endpoints + credentials from the environment."""
    values = {
        "PLAYERS_URL": os.getenv("PLAYERS_URL"),
        "GUILDS_URL": os.getenv("GUILDS_URL"),
        "ADMIN_PASSWORD": os.getenv("ADMIN_PASSWORD"),
        "PALDEFENDER_TOKEN": os.getenv("PALDEFENDER_TOKEN"),
    }
    missing = [k for k, v in values.items() if not v]
    if missing:
        raise ConfigError(f"Missing env {', '.join(missing)}")
    return ApiConfig(
        players_url=values["PLAYERS_URL"],
        guilds_url=values["GUILDS_URL"],
        admin_password=values["ADMIN_PASSWORD"],
        guilds_token=values["PALDEFENDER_TOKEN"],
    )
