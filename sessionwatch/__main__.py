"""Run the SessionWatch API with uvicorn."""
import uvicorn

from sessionwatch import config


def main() -> None:
    uvicorn.run("sessionwatch.main:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
