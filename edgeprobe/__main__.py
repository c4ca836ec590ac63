"""Entry point for the edgeprobe desktop shell."""

import logging
import sys

from PySide6.QtWidgets import QApplication

from edgeprobe.config import ProbeConfig
from edgeprobe.engine import build_prober
from edgeprobe.errors import ProbeConfigurationError
from edgeprobe.fake_prober import FakeProber
from edgeprobe.logging_config import configure_logging
from edgeprobe.scheduler import ProbeScheduler
from edgeprobe.ui.main_window import MainWindow

# Configure logging early
configure_logging()
logger = logging.getLogger(__name__)


def main():
    """Main entry point for the edgeprobe application."""
    app = QApplication(sys.argv)

    user_message = None
    debug_info = None

    try:
        config = ProbeConfig.from_env()
    except ProbeConfigurationError as e:
        logger.error("Configuration invalid, using defaults: %s", e)
        config = ProbeConfig()
        user_message = "Invalid EDGEPROBE_* settings, using defaults"
        debug_info = str(e)

    try:
        prober = build_prober(config)
        logger.info("Prober initialized: backend=%s", config.prober)
    except (ValueError, OSError) as e:
        logger.warning("Prober %s unavailable: %s", config.prober, e)
        prober = FakeProber(timeout_ms=config.timeout_ms)
        user_message = "Using simulated data (probe backend unavailable)"
        debug_info = str(e)

    if config.prober == "fake" and not user_message:
        user_message = "Using simulated data (EDGEPROBE_PROBER=fake)"

    window = MainWindow(scheduler=ProbeScheduler(prober, config))

    if user_message:
        window.status_label.setText(f"Status: {user_message}")
        window.status_label.setStyleSheet("font-weight: bold; color: orange;")
        if debug_info:
            window.status_label.setToolTip(f"Technical details: {debug_info}")
            logger.debug("Debug info: %s", debug_info)

    window.show()

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
