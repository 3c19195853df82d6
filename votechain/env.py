from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def load_env(env_path: Optional[Path] = None) -> bool:
    """
    Seed os.environ from a .env file (default: ./.env).

    Variables already set in the environment are left alone, so ORACLE_API_KEY
    or LEDGER_PRIVATE_KEY exported by the shell win over the file.

    Returns:
        True if the file defined any variables
    """
    env_path = env_path or Path.cwd() / ".env"
    if not env_path.is_file():
        return False
    return load_dotenv(dotenv_path=env_path, override=False)
