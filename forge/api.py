"""External API client — CRUD for stage records and their messages over HTTP."""

import sys

import httpx

from forge.config import get_api_token, get_config
from forge.stages import STAGES, empty_context, get_stage
from forge.state import ProjectContext


def _log_request(request: httpx.Request) -> None:
    print(f"[Forge] API {request.method} {request.url}", file=sys.stderr)


def _log_response(response: httpx.Response) -> None:
    request = response.request
    print(f"[Forge] API {request.method} {request.url} -> {response.status_code}",
          file=sys.stderr)


class StageApiClient:
    """Thin httpx wrapper over the Idea/ActionPlan/Architecture endpoints.

    Every method raises httpx.HTTPStatusError for non-2xx responses, except
    get_downstream which treats 404 as "no downstream record yet".
    """

    def __init__(self, base_url: str | None = None, token: str | None = None,
                 timeout: float | None = None, transport: httpx.BaseTransport | None = None):
        config = get_config()
        token = get_api_token() if token is None else token
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.Client(
            base_url=base_url or config["api_base_url"],
            headers=headers,
            timeout=timeout if timeout is not None else config.get("request_timeout", 30),
            transport=transport,
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        self._client.close()

    def _path(self, stage: str, record_id: str) -> str:
        return get_stage(stage).resource_path.format(id=record_id)

    def get_record(self, stage: str, record_id: str) -> dict:
        response = self._client.get(self._path(stage, record_id))
        response.raise_for_status()
        return response.json()

    def get_downstream(self, stage: str, record_id: str) -> dict | None:
        """Return the record derived from (stage, record_id), or None if none exists."""
        schema = get_stage(stage)
        if schema.downstream is None:
            return None
        path = STAGES[schema.downstream].by_parent_path.format(id=record_id)
        response = self._client.get(path)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json() or None

    def update_record(self, stage: str, record_id: str, updates: dict,
                      source: str | None = None) -> dict:
        """PUT a partial record. source names the stage a propagated write came from."""
        body = dict(updates)
        if source:
            body["source"] = source
        response = self._client.put(self._path(stage, record_id), json=body)
        response.raise_for_status()
        return response.json()

    def list_messages(self, stage: str, record_id: str) -> list[dict]:
        response = self._client.get(get_stage(stage).messages_path.format(id=record_id))
        response.raise_for_status()
        return response.json() or []

    def edit_section(self, stage: str, record_id: str, payload: dict) -> str:
        """POST to the stage's edit-section endpoint and return the raw body text."""
        response = self._client.post(get_stage(stage).edit_path.format(id=record_id), json=payload)
        response.raise_for_status()
        return response.text

    def load_context(self, stage: str, record_id: str) -> ProjectContext:
        """Load a record plus every record up and down its ownership chain."""
        schema = get_stage(stage)
        context = empty_context()
        context[schema.name] = self.get_record(schema.name, record_id)

        # Walk upstream through parent ids.
        current = schema
        while current.upstream is not None:
            parent_id = (context[current.name] or {}).get(current.parent_key)
            if not parent_id:
                break
            context[current.upstream] = self.get_record(current.upstream, parent_id)
            current = STAGES[current.upstream]

        # Walk downstream through the by-parent lookups.
        current = schema
        while current.downstream is not None:
            record = context[current.name]
            if not record or not record.get("id"):
                break
            context[current.downstream] = self.get_downstream(current.name, record["id"])
            current = STAGES[current.downstream]

        return context
