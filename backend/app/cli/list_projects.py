"""CLI for listing Linear projects, used to find `project_id` values."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict

import httpx

from app.core.config import Settings, get_settings
from app.services.issue_tracker import PROJECT_PAGE_SIZE, LinearClient, ProjectSummary


def format_project(project: ProjectSummary) -> str:
    """Render one project as `name  id  [slug]  state  target`."""
    parts = [project.name, project.id]
    if project.slug:
        parts.append(f"[{project.slug}]")
    if project.state:
        parts.append(project.state)
    if project.target_date:
        parts.append(f"target {project.target_date}")
    return "  ".join(parts)


async def fetch_projects(
    settings: Settings,
    *,
    limit: int,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[ProjectSummary]:
    client = LinearClient(settings, transport=transport)
    return await client.list_projects(first=limit)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m app.cli.list_projects",
        description="List Linear projects visible to LINEAR_API_KEY.",
    )
    parser.add_argument("--limit", type=int, default=PROJECT_PAGE_SIZE)
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the projects as a JSON array.",
    )
    return parser


def main(
    argv: list[str] | None = None,
    *,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = settings or get_settings()
    if settings.linear_api_key_value() is None:
        print("Missing LINEAR_API_KEY. Add it to your environment to query Linear.", file=sys.stderr)
        return 1
    try:
        projects = asyncio.run(fetch_projects(settings, limit=args.limit, transport=transport))
    except Exception as exc:
        print(f"list-projects error: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps([asdict(project) for project in projects], indent=2, sort_keys=True))
        return 0
    if not projects:
        print("No projects returned. Check that the API key can see at least one project.")
        return 0
    for project in projects:
        print(format_project(project))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
