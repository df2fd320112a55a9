"""Module entrypoint for running one full refresh."""

from kline_movers.services.pipeline.main import main

if __name__ == "__main__":
    raise SystemExit(main())
