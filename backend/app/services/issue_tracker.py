"""Linear GraphQL client: ticket creation, comments, labels and state mapping."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from app.core.errors import TrackerError
from app.core.logging import get_logger

if TYPE_CHECKING:
    from app.core.config import Settings

logger = get_logger(__name__)

DEFAULT_STATUS = "pending"
# Lookup keys are lower-cased, whitespace-trimmed Linear workflow state names.
LINEAR_STATE_TO_STATUS: dict[str, str] = {
    "backlog": "triaged",
    "todo": "pending",
    "in progress": "in_progress",
    "in review": "in_review",
    "done": "resolved",
    "canceled": "cancelled",
    "cancelled": "cancelled",
    "closed": "closed",
}
PROJECT_PAGE_SIZE = 25
COMMENT_PAGE_SIZE = 50

ISSUE_CREATE_MUTATION = """
mutation IssueCreate($input: IssueCreateInput!) {
  issueCreate(input: $input) {
    success
    issue { id identifier url }
  }
}
"""
ISSUE_COMMENTS_QUERY = """
query IssueComments($id: String!, $first: Int!) {
  issue(id: $id) {
    id
    comments(first: $first) {
      nodes { id body createdAt }
    }
  }
}
"""
ISSUE_LABELS_QUERY = """
query IssueLabels($id: String!) {
  issue(id: $id) { id labelIds }
}
"""
ISSUE_UPDATE_MUTATION = """
mutation IssueUpdate($id: String!, $input: IssueUpdateInput!) {
  issueUpdate(id: $id, input: $input) { success }
}
"""
PROJECTS_QUERY = """
query Projects($first: Int!) {
  projects(first: $first, orderBy: updatedAt) {
    nodes { id name slugId state targetDate url }
  }
}
"""


def map_state_to_status(state_name: str | None) -> str:
    """Map a Linear workflow state name to an internal status.

    Total over all inputs: unknown or empty names fall back to `pending`.
    """
    if not state_name:
        return DEFAULT_STATUS
    return LINEAR_STATE_TO_STATUS.get(state_name.strip().lower(), DEFAULT_STATUS)


@dataclass(frozen=True, slots=True)
class CreatedTicket:
    ticket_id: str
    identifier: str
    url: str | None = None


@dataclass(frozen=True, slots=True)
class ProjectSummary:
    id: str
    name: str
    slug: str | None = None
    state: str | None = None
    target_date: str | None = None
    url: str | None = None


def _as_dict(value: object) -> dict[str, object]:
    return value if isinstance(value, dict) else {}


def _optional_text(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


class LinearClient:
    """One external round trip per operation; failures raise `TrackerError`."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = settings.linear_api_key_value()
        self.api_url = settings.linear_api_url
        self.timeout_seconds = settings.linear_timeout_seconds
        self.team_id = settings.linear_team_id.strip() or None
        self.default_label_id = settings.linear_default_label_id.strip() or None
        self.transport = transport

    @property
    def configured(self) -> bool:
        return self.api_key is not None

    def _require_api_key(self) -> str:
        if self.api_key is None:
            raise TrackerError("Missing LINEAR_API_KEY. Add it to your environment to query Linear.")
        return self.api_key

    async def _graphql(self, query: str, variables: dict[str, object]) -> dict[str, object]:
        api_key = self._require_api_key()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                headers={"Authorization": api_key, "Content-Type": "application/json"},
                transport=self.transport,
            ) as client:
                response = await client.post(
                    self.api_url,
                    json={"query": query, "variables": variables},
                )
        except httpx.HTTPError as exc:
            raise TrackerError(f"Linear request failed: {exc}") from exc

        if response.status_code >= 400:
            raise TrackerError(
                f"Linear request failed with status {response.status_code}",
                details={"status": response.status_code, "body": response.text[:300]},
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TrackerError("Linear response was not valid JSON") from exc
        payload = _as_dict(payload)
        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            messages = [
                str(_as_dict(error).get("message", "unknown error")) for error in errors
            ]
            raise TrackerError(", ".join(messages), details={"errors": errors})
        return _as_dict(payload.get("data"))

    async def create_ticket(
        self,
        *,
        scope_id: str,
        title: str,
        body: str,
        label_ids: Sequence[str] = (),
    ) -> CreatedTicket:
        """Create a Linear issue under `scope_id`.

        With a configured team the scope is treated as a project in that team,
        otherwise the scope itself is the team.
        """
        issue_input: dict[str, object] = {"title": title, "description": body}
        if self.team_id:
            issue_input["teamId"] = self.team_id
            issue_input["projectId"] = scope_id
        else:
            issue_input["teamId"] = scope_id
        if label_ids:
            issue_input["labelIds"] = list(dict.fromkeys(label_ids))

        data = await self._graphql(ISSUE_CREATE_MUTATION, {"input": issue_input})
        result = _as_dict(data.get("issueCreate"))
        issue = _as_dict(result.get("issue"))
        ticket_id = _optional_text(issue.get("id"))
        if not result.get("success") or ticket_id is None:
            raise TrackerError("Linear did not confirm issue creation", details=result or None)
        ticket = CreatedTicket(
            ticket_id=ticket_id,
            identifier=_optional_text(issue.get("identifier")) or ticket_id,
            url=_optional_text(issue.get("url")),
        )
        logger.info(
            "linear.issue.created ticket_id=%s identifier=%s scope_id=%s",
            ticket.ticket_id,
            ticket.identifier,
            scope_id,
        )
        return ticket

    async def fetch_latest_comment(self, ticket_id: str) -> str | None:
        """Return the body of the newest comment on the issue, if any."""
        data = await self._graphql(
            ISSUE_COMMENTS_QUERY,
            {"id": ticket_id, "first": COMMENT_PAGE_SIZE},
        )
        issue = _as_dict(data.get("issue"))
        if not issue:
            raise TrackerError(f"Linear issue {ticket_id} not found")
        nodes = _as_dict(issue.get("comments")).get("nodes")
        if not isinstance(nodes, list):
            return None
        comments = [
            node
            for node in nodes
            if isinstance(node, dict) and _optional_text(node.get("body")) is not None
        ]
        if not comments:
            return None
        latest = max(comments, key=lambda node: str(node.get("createdAt") or ""))
        return str(latest["body"])

    async def add_default_label(self, ticket_id: str) -> bool:
        """Append the configured default label; returns False when nothing changed."""
        if self.default_label_id is None:
            logger.info("linear.label.skipped reason=no_default_label ticket_id=%s", ticket_id)
            return False
        data = await self._graphql(ISSUE_LABELS_QUERY, {"id": ticket_id})
        issue = _as_dict(data.get("issue"))
        if not issue:
            raise TrackerError(f"Linear issue {ticket_id} not found")
        raw_labels = issue.get("labelIds")
        label_ids = [str(label) for label in raw_labels] if isinstance(raw_labels, list) else []
        if self.default_label_id in label_ids:
            return False

        data = await self._graphql(
            ISSUE_UPDATE_MUTATION,
            {"id": ticket_id, "input": {"labelIds": [*label_ids, self.default_label_id]}},
        )
        if not _as_dict(data.get("issueUpdate")).get("success"):
            raise TrackerError(f"Linear did not confirm label update for {ticket_id}")
        logger.info(
            "linear.label.added ticket_id=%s label_id=%s",
            ticket_id,
            self.default_label_id,
        )
        return True

    async def list_projects(self, *, first: int = PROJECT_PAGE_SIZE) -> list[ProjectSummary]:
        data = await self._graphql(PROJECTS_QUERY, {"first": max(1, first)})
        nodes = _as_dict(data.get("projects")).get("nodes")
        if not isinstance(nodes, list):
            return []
        projects: list[ProjectSummary] = []
        for node in nodes:
            node_map = _as_dict(node)
            project_id = _optional_text(node_map.get("id"))
            if project_id is None:
                continue
            projects.append(
                ProjectSummary(
                    id=project_id,
                    name=str(node_map.get("name") or project_id),
                    slug=_optional_text(node_map.get("slugId")),
                    state=_optional_text(node_map.get("state")),
                    target_date=_optional_text(node_map.get("targetDate")),
                    url=_optional_text(node_map.get("url")),
                )
            )
        return projects
