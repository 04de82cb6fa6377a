from pathlib import Path

LOG_DIR = Path(__file__).parent / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = LOG_DIR / "session.jsonl"
APP_NAME = "Flash Layout Tool"

# Целевой чип: 16 МБ SPI-флеш, таблица по 0x10000
DEFAULT_CAPACITY = 16 * 1024 * 1024
SIM_CAPACITY = DEFAULT_CAPACITY
DEFAULT_IMAGE = Path("logs/sim_flash.bin")
