import logging
from typing import Any, Dict, List, Optional

from models.provider import TemplateIn
from services.remote_store import UNIQUE_VIOLATION, RemoteStore
from utils.exceptions import RemoteStoreError

logger = logging.getLogger("services.templates")

TABLE = "structure_templates"


def _obj(**properties) -> Dict[str, Any]:
	return {"type": "object", "properties": properties}


def _str() -> Dict[str, str]:
	return {"type": "string"}


def _num() -> Dict[str, str]:
	return {"type": "number"}


def _list(items: Dict[str, Any]) -> Dict[str, Any]:
	return {"type": "array", "items": items}


DEFAULT_TEMPLATES: List[Dict[str, Any]] = [
	{
		"name": "Invoice",
		"description": "Extract invoice details including items, amounts, dates, and vendor information",
		"template_schema": _obj(
			invoice_number=_str(),
			invoice_date=_str(),
			due_date=_str(),
			vendor_name=_str(),
			vendor_address=_str(),
			customer_name=_str(),
			items=_list(_obj(description=_str(), quantity=_num(), unit_price=_num(), total=_num())),
			subtotal=_num(),
			tax=_num(),
			total_amount=_num(),
		),
	},
	{
		"name": "Receipt",
		"description": "Extract receipt information including store details, items, and payment",
		"template_schema": _obj(
			store_name=_str(),
			store_address=_str(),
			transaction_date=_str(),
			transaction_time=_str(),
			receipt_number=_str(),
			items=_list(_obj(name=_str(), quantity=_num(), unit_price=_num(), total_price=_num())),
			subtotal=_num(),
			tax=_num(),
			total=_num(),
			payment_method=_str(),
		),
	},
	{
		"name": "Contract",
		"description": "Extract contract details including parties, dates, terms, and clauses",
		"template_schema": _obj(
			contract_title=_str(),
			contract_date=_str(),
			effective_date=_str(),
			party_1=_obj(name=_str(), address=_str(), role=_str()),
			party_2=_obj(name=_str(), address=_str(), role=_str()),
			terms=_list(_str()),
			payment_terms=_str(),
		),
	},
	{
		"name": "Document Summary",
		"description": "Extract a general summary with title, dates, authors, and key points",
		"template_schema": _obj(
			title=_str(),
			date=_str(),
			author=_str(),
			summary=_str(),
			key_points=_list(_str()),
		),
	},
	{
		"name": "Business Card",
		"description": "Extract business card information including contact details",
		"template_schema": _obj(
			full_name=_str(),
			job_title=_str(),
			company_name=_str(),
			email=_str(),
			phone=_str(),
			website=_str(),
			address=_str(),
		),
	},
]


class TemplateService:
	def __init__(self, remote: RemoteStore):
		self.remote = remote

	def seed_defaults(self) -> Dict[str, List[str]]:
		"""Insert the built-in public templates; ones that already exist are skipped."""
		results: Dict[str, List[str]] = {"added": [], "skipped": [], "failed": []}
		for template in DEFAULT_TEMPLATES:
			if self.remote.select_one(TABLE, {"name": template["name"], "is_public": True}):
				results["skipped"].append(template["name"])
				continue
			try:
				self.remote.insert(TABLE, {**template, "is_public": True, "user_id": None})
			except RemoteStoreError as e:
				if e.code == UNIQUE_VIOLATION:
					results["skipped"].append(template["name"])
				else:
					results["failed"].append(template["name"])
					logger.error("template_seed_failed", extra={"template": template["name"], "error": str(e)})
				continue
			results["added"].append(template["name"])
		logger.info("templates_seeded", extra={k: len(v) for k, v in results.items()})
		return results

	def list_templates(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
		rows = self.remote.select(TABLE, {"is_public": True}, order_by="name")
		if user_id:
			own = self.remote.select(TABLE, {"user_id": user_id, "is_public": False}, order_by="name")
			rows = rows + own
		return rows

	def get_template(self, template_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
		row = self.remote.get(TABLE, template_id)
		if row and (row.get("is_public") or row.get("user_id") == user_id):
			return row
		return None

	def create_template(self, data: TemplateIn, user_id: Optional[str]) -> Dict[str, Any]:
		row = self.remote.insert(TABLE, {**data.model_dump(), "user_id": user_id})
		logger.info("template_created", extra={"template_id": row["id"], "template": data.name})
		return row
