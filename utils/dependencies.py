from fastapi import HTTPException, Request, status

from services.container import AppServices


def get_app_services(request: Request) -> AppServices:
	return request.app.state.services


def can_access(row: dict, user: dict) -> bool:
	"""Rows are visible to their owner and to admins."""
	return user.get("role") == "admin" or row.get("user_id") == str(user["id"])


def ensure_access(row, user: dict, what: str = "Resource") -> dict:
	if not row or not can_access(row, user):
		raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")
	return row
