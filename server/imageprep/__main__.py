"""Run the API server: ``python -m imageprep``."""

import logging

import uvicorn

from imageprep.config import HOST, LOG_LEVEL, PORT


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("imageprep.app:create_app", factory=True, host=HOST, port=PORT)


if __name__ == "__main__":
    main()
