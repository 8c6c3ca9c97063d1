"""Dispatch a ``depup`` event to every ``action-`` repository of an organisation."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from urllib.parse import quote

import requests

DEFAULT_ORG = "reviewhound"
DEFAULT_BASE_URL = "https://api.github.com"
TOKEN_ENV = "DEPUP_GITHUB_API_TOKEN"
REPO_PREFIX = "action-"

_TIMEOUT = 30

logger = logging.getLogger(__name__)


def run(
    org: str = DEFAULT_ORG,
    token: str | None = None,
    base_url: str = DEFAULT_BASE_URL,
) -> list[str]:
    """Dispatch ``depup`` to the organisation's action repositories.

    Only the 100 most recently updated repositories are considered. Returns the
    names dispatched to; if any dispatch failed, the last error is raised after
    all were tried.
    """
    if token is None:
        token = os.environ.get(TOKEN_ENV, "")
    if not token:
        raise RuntimeError(f"{TOKEN_ENV} is empty")

    base = base_url.rstrip("/")
    session = requests.Session()
    session.headers["Authorization"] = f"Bearer {token}"
    session.headers["Accept"] = "application/vnd.github.v3+json"

    response = session.get(
        f"{base}/orgs/{quote(org, safe='')}/repos",
        params={"sort": "updated", "direction": "desc", "per_page": 100},
        timeout=_TIMEOUT,
    )
    response.raise_for_status()

    dispatched: list[str] = []
    last_error: Exception | None = None
    for repo in response.json():
        name = repo.get("name") or ""
        if not name.startswith(REPO_PREFIX):
            continue
        logger.info("Dispatch depup to %s/%s...", org, name)
        try:
            dispatch = session.post(
                f"{base}/repos/{quote(org, safe='')}/{quote(name, safe='')}/dispatches",
                json={"event_type": "depup"},
                timeout=_TIMEOUT,
            )
            dispatch.raise_for_status()
        except requests.RequestException as err:
            logger.warning("Dispatch depup to %s/%s failed: %s", org, name, err)
            last_error = err
            continue
        dispatched.append(name)

    if last_error is not None:
        raise last_error
    return dispatched


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point; returns the exit status."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--org", default=DEFAULT_ORG, help="target org name")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    try:
        run(org=args.org)
    except (RuntimeError, requests.RequestException, ValueError) as err:
        print(err, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())