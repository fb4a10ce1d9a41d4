"""Shared CLI helpers."""

from rich import print as rprint

from wordloop.config import Settings, load_settings
from wordloop.core.models import Direction, Quality
from wordloop.core.service import StudyService
from wordloop.core.storage import WordloopStorage

# Global instances (initialized lazily)
_settings: Settings | None = None
_service: StudyService | None = None


def get_settings() -> Settings:
    """Get or load the settings."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_service() -> StudyService:
    """Get or create the study service."""
    global _service
    if _service is None:
        settings = get_settings()
        storage = WordloopStorage(settings.data_dir, settings.state_dir)
        _service = StudyService(storage, settings.scheduler, daily_goal=settings.daily_goal)
    return _service


def reset() -> None:
    """Forget cached settings and service (used between CLI test invocations)."""
    global _settings, _service
    _settings = None
    _service = None


def direction_label(direction: Direction) -> str:
    return "A → B" if direction == Direction.A_TO_B else "B → A"


QUALITY_STYLES = {
    Quality.HARD: "red",
    Quality.MEDIUM: "yellow",
    Quality.EASY: "green",
}


def print_quality_legend() -> None:
    rprint(
        "  [red]1[/red] Hard  "
        "[yellow]2[/yellow] Medium  "
        "[green]3[/green] Easy  "
        "[dim]q[/dim] Quit"
    )
