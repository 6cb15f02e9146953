"""Issue, custom field, and workflow route handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter
    from fastapi.responses import JSONResponse

from ticketry.core import Issue, TicketDB
from ticketry.dashboard_routes.common import (
    _error_response,
    _exception_response,
    _get_bool_param,
    _parse_csv_param,
    _parse_json_body,
    _parse_pagination,
    _validate_actor,
    _validate_expected_version,
)
from ticketry.db_base import StaleIssueError
from ticketry.fields import FieldShape

logger = logging.getLogger(__name__)

# Every exception the DB layer raises for bad input, missing rows, or races.
_DB_ERRORS = (ValueError, LookupError, StaleIssueError)


def _find_issue(db: TicketDB, project: str, number: int) -> Issue | JSONResponse:
    try:
        return db.get_issue_by_number(project, number)
    except KeyError:
        return _error_response(f"Issue not found: #{number}", "ISSUE_NOT_FOUND", 404, {"number": number})


# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------


def create_router() -> APIRouter:
    """Build the APIRouter for issue, field, and workflow endpoints.

    NOTE: All handlers are async despite doing synchronous SQLite I/O so
    that DB access stays on the event loop thread and the single shared
    connection is never used from two threads at once.
    """
    from fastapi import APIRouter, Depends
    from fastapi.responses import JSONResponse

    from ticketry.dashboard import _get_db, _get_project

    router = APIRouter()

    @router.get("/issues")
    async def api_issues(
        request: Request,
        db: TicketDB = Depends(_get_db),
        project: str = Depends(_get_project),
    ) -> JSONResponse:
        params = request.query_params
        paging = _parse_pagination(params)
        if isinstance(paging, JSONResponse):
            return paging
        limit, offset = paging
        descending = _get_bool_param(params, "desc", False)
        if isinstance(descending, JSONResponse):
            return descending
        try:
            if params.get("q"):
                issues = db.find_issues_by_title(project, params["q"], limit=limit)
            else:
                issues = db.list_issues(
                    project,
                    state=params.get("state"),
                    milestone=params.get("milestone"),
                    order_by=params.get("sort", "Number"),
                    descending=descending,
                    limit=limit,
                    offset=offset,
                )
        except _DB_ERRORS as e:
            return _exception_response(e)
        return JSONResponse([i.to_dict() for i in issues])

    @router.post("/issues")
    async def api_create_issue(
        request: Request,
        db: TicketDB = Depends(_get_db),
        project: str = Depends(_get_project),
    ) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        actor = _validate_actor(body.get("actor"))
        if isinstance(actor, JSONResponse):
            return actor
        fields = body.get("fields") or {}
        if not isinstance(fields, dict):
            return _error_response("fields must be a JSON object", "VALIDATION_ERROR", 400)
        try:
            issue = db.create_issue(
                project,
                body.get("title", ""),
                description=body.get("description", ""),
                submitter=actor,
                milestone=body.get("milestone"),
                state=body.get("state"),
                fields=fields,
                actor=actor,
            )
        except _DB_ERRORS as e:
            return _exception_response(e)
        return JSONResponse(issue.to_dict(), status_code=201)

    @router.get("/issue/{number}")
    async def api_issue_detail(
        number: int,
        db: TicketDB = Depends(_get_db),
        project: str = Depends(_get_project),
    ) -> JSONResponse:
        """Issue with effective fields, comments, and recent changes."""
        issue = _find_issue(db, project, number)
        if isinstance(issue, JSONResponse):
            return issue
        result: dict[str, Any] = dict(issue.to_dict())
        result["comments"] = db.get_comments(issue.id)
        result["changes"] = db.get_changes(issue.id, limit=20)
        result["watchers"] = db.list_watchers(issue.id)
        return JSONResponse(result)

    @router.get("/issue/{number}/fields")
    async def api_issue_fields(
        request: Request,
        number: int,
        db: TicketDB = Depends(_get_db),
        project: str = Depends(_get_project),
    ) -> JSONResponse:
        """Effective custom fields, or the stored rows with ``?raw=true``."""
        issue = _find_issue(db, project, number)
        if isinstance(issue, JSONResponse):
            return issue
        raw = _get_bool_param(request.query_params, "raw", False)
        if isinstance(raw, JSONResponse):
            return raw
        if raw:
            return JSONResponse([r.to_dict() for r in db.get_field_rows(issue.id)])
        return JSONResponse([f.to_dict() for f in issue.fields.values()])

    @router.put("/issue/{number}/fields/{name}")
    async def api_set_field(
        number: int,
        name: str,
        request: Request,
        db: TicketDB = Depends(_get_db),
        project: str = Depends(_get_project),
    ) -> JSONResponse:
        """Replace every value of one field. Body: ``{"value": ..., "expected_version"?: int}``."""
        issue = _find_issue(db, project, number)
        if isinstance(issue, JSONResponse):
            return issue
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        if "value" not in body:
            return _error_response("Request body must contain 'value'", "VALIDATION_ERROR", 400)
        actor = _validate_actor(body.get("actor"))
        if isinstance(actor, JSONResponse):
            return actor
        expected_version = _validate_expected_version(body.get("expected_version"))
        if isinstance(expected_version, JSONResponse):
            return expected_version
        try:
            updated = db.set_field_value(issue.id, name, body["value"], expected_version=expected_version, actor=actor)
        except _DB_ERRORS as e:
            return _exception_response(e)
        return JSONResponse(updated.to_dict())

    @router.post("/issue/{number}/state")
    async def api_change_state(
        number: int,
        request: Request,
        db: TicketDB = Depends(_get_db),
        project: str = Depends(_get_project),
    ) -> JSONResponse:
        """Move to another state. Body: ``{"state": str, "fields"?: {...}, "expected_version"?: int}``."""
        issue = _find_issue(db, project, number)
        if isinstance(issue, JSONResponse):
            return issue
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        state = body.get("state")
        if not isinstance(state, str) or not state:
            return _error_response("state must be a non-empty string", "VALIDATION_ERROR", 400)
        fields = body.get("fields") or {}
        if not isinstance(fields, dict):
            return _error_response("fields must be a JSON object", "VALIDATION_ERROR", 400)
        actor = _validate_actor(body.get("actor"))
        if isinstance(actor, JSONResponse):
            return actor
        expected_version = _validate_expected_version(body.get("expected_version"))
        if isinstance(expected_version, JSONResponse):
            return expected_version
        try:
            updated = db.change_state(issue.id, state, fields=fields, expected_version=expected_version, actor=actor)
        except _DB_ERRORS as e:
            return _exception_response(e)
        return JSONResponse(updated.to_dict())

    @router.get("/issue/{number}/excluded")
    async def api_excluded_fields(
        number: int,
        request: Request,
        db: TicketDB = Depends(_get_db),
        project: str = Depends(_get_project),
    ) -> JSONResponse:
        """Field names a form should hide for ``?state=`` (default: the issue's state).

        ``?fields=A,B`` lists the form's slots; by default every workflow field.
        """
        issue = _find_issue(db, project, number)
        if isinstance(issue, JSONResponse):
            return issue
        state = request.query_params.get("state") or issue.state
        names = _parse_csv_param(request.query_params.get("fields", ""))
        if not names:
            names = [f.name for f in db.get_workflow(issue.project_id).get_field_specs()]
        try:
            shape = FieldShape.from_names(names)
            slots = db.get_excluded_fields(issue.id, shape, state)
        except _DB_ERRORS as e:
            return _exception_response(e)
        excluded = [s.field_name for s in shape.slots if s.attr in slots]
        return JSONResponse({"state": state, "excluded": excluded})

    @router.get("/workflow")
    async def api_workflow(
        db: TicketDB = Depends(_get_db),
        project: str = Depends(_get_project),
    ) -> JSONResponse:
        return JSONResponse(db.get_workflow(project).to_dict())

    return router
