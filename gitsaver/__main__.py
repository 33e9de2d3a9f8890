"""Run the webhook receiver: ``python -m gitsaver`` (or the ``gitsaver`` script)."""

import uvicorn

from gitsaver.core.config import get_settings
from gitsaver.main import create_app


def main() -> None:
    settings = get_settings()
    app = create_app(settings)
    # log_config=None keeps uvicorn on the root handler configured by create_app().
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
