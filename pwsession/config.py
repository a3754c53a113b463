from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from pwsession.constants import DEFAULT_SESSION_ID, REPO_ROOT_DIR


def resolve_env_path(filename: str = ".env") -> Path:
    """Return the preferred .env path.

    Preference order:
        1. Current working directory .env if it exists.
        2. Repository root .env (may not exist).
    """
    cwd_env = Path.cwd() / filename
    if cwd_env.exists():
        return cwd_env
    return REPO_ROOT_DIR / filename


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=resolve_env_path(), extra="ignore")

    ENV: str = "local"
    LOG_LEVEL: str = "INFO"
    JSON_LOGGING: bool = False

    # server settings
    HOST: str = "127.0.0.1"
    PORT: int = 45123
    PID_FILE: str = ".session-server.pid"
    SERVER_START_TIMEOUT_SECONDS: float = 10.0
    REQUEST_TIMEOUT_SECONDS: float = 300.0

    DEFAULT_SESSION_ID: str = DEFAULT_SESSION_ID

    # browser settings
    # options: chromium-headful, chromium-headless, firefox, webkit
    BROWSER_TYPE: str = "chromium-headful"
    BROWSER_WIDTH: int = 1280
    BROWSER_HEIGHT: int = 720
    # short on purpose, fragments are interactive
    BROWSER_ACTION_TIMEOUT_MS: int = 8000
    BROWSER_USER_AGENT: str | None = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    BROWSER_ARGS: list[str] = [
        "--disable-web-security",
        "--disable-features=VizDisplayCompositor",
        "--no-first-run",
        "--disable-default-apps",
    ]
    CHROME_EXECUTABLE_PATH: str | None = None
    # only consulted for firefox and webkit
    BROWSER_HEADLESS: bool = False

    # persisted state
    SESSIONS_DIR: str = ".playwright-sessions"
    STORAGE_STATES_DIR: str = ".playwright-storage-states"
    ORPHAN_SWEEP_ENABLED: bool = True

    def is_headless(self) -> bool:
        if self.BROWSER_TYPE.startswith("chromium-"):
            return self.BROWSER_TYPE == "chromium-headless"
        return self.BROWSER_HEADLESS

    def server_url(self) -> str:
        return f"http://{self.HOST}:{self.PORT}"


settings = Settings()
