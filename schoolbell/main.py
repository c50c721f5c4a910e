"""SchoolBell entry point."""

import logging

from schoolbell.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Start the assistant on Telegram."""
    from schoolbell.app import create_app

    children = settings.get_children()
    if not children:
        logger.warning("CHILDREN is empty, no week letters or reminders will be delivered")
    else:
        logger.info("Configured children: %s", ", ".join(c.name for c in children))

    logger.info("Starting SchoolBell (timezone %s)...", settings.scheduler_timezone)
    app = create_app()
    app.run_polling()


if __name__ == "__main__":
    main()
