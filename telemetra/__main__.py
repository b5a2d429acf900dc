from telemetra.cli.app import app
from telemetra.conf import Settings, configure_logging


def run() -> None:
    configure_logging(Settings().log_level)
    app()


if __name__ == "__main__":
    run()
