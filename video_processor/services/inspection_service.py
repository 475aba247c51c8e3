"""Repair order inspection lookup for the capture UI."""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from video_processor.exceptions import RepairOrderNotFoundError
from video_processor.services.credential_provider import CredentialProvider
from video_processor.services.tekmetric_client import TekmetricClient

logger = logging.getLogger(__name__)


@dataclass
class InspectionTask:
    id: Any
    name: str | None
    inspectionId: Any
    inspectionName: str = ""
    rating: str | None = None
    finding: str = ""
    group: str = ""
    groupSortOrder: int = 0
    inspectionTaskId: Any = None
    externalImages: list = field(default_factory=list)


@dataclass
class InspectionSummary:
    roId: Any
    roNumber: Any
    customer: str
    vehicle: str
    tasks: list[InspectionTask] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _task(task: dict, inspection: dict, fallback_group: str = "") -> InspectionTask:
    rating = task.get("inspectionRating") or {}
    return InspectionTask(
        id=task.get("id"),
        name=task.get("name"),
        inspectionId=inspection.get("id"),
        inspectionName=inspection.get("name") or "",
        rating=rating.get("code") if isinstance(rating, dict) else None,
        finding=task.get("finding") or "",
        group=task.get("inspectionGroup") or fallback_group or "",
        groupSortOrder=task.get("groupSortOrder") or 0,
        inspectionTaskId=task.get("inspectionTaskId"),
        externalImages=task.get("externalImages") or [],
    )


def flatten_tasks(inspections: list[dict]) -> list[InspectionTask]:
    """Collect tasks from both the flat ``tasks`` list and nested sections."""
    tasks: list[InspectionTask] = []
    for inspection in inspections:
        if not isinstance(inspection, dict):
            continue
        for task in inspection.get("tasks") or []:
            tasks.append(_task(task, inspection))
        for section in inspection.get("inspectionTasks") or []:
            for task in section.get("tasks") or []:
                tasks.append(_task(task, inspection, section.get("title") or ""))
    return tasks


def customer_name(ro: dict) -> str:
    customer = ro.get("customer")
    if not customer:
        return "Unknown"
    return customer.get("fullName") or f"{customer.get('firstName') or ''} {customer.get('lastName') or ''}".strip()


def vehicle_name(ro: dict) -> str:
    vehicle = ro.get("vehicle")
    if not vehicle:
        return "Unknown"
    return (
        vehicle.get("description")
        or vehicle.get("shortDescription")
        or f"{vehicle.get('year') or ''} {vehicle.get('make') or ''} {vehicle.get('model') or ''}".strip()
    )


class InspectionService:
    def __init__(self, credentials: CredentialProvider, tekmetric: TekmetricClient):
        self.credentials = credentials
        self.tekmetric = tekmetric

    async def get_inspections(self, shop_id: str, ro_number: str) -> InspectionSummary:
        """Find a repair order by exact number and list its inspection tasks.

        Raises:
            CredentialError: If the shop has no usable token
            RepairOrderNotFoundError: If no search hit matches exactly
            UpstreamError: If either Tekmetric call fails
        """
        logger.info(f"[inspections] Looking up RO {ro_number} for shop {shop_id}")
        token = await self.credentials.get_credential(shop_id)

        ros = await self.tekmetric.search_repair_orders(token, shop_id, ro_number)
        ro = next((r for r in ros if str(r.get("repairOrderNumber")) == str(ro_number)), None)
        if ro is None:
            raise RepairOrderNotFoundError(ro_number)

        logger.info(f"[inspections] Found RO {ro.get('id')}, fetching inspections...")
        inspections = await self.tekmetric.get_inspections(token, shop_id, ro.get("id"))
        tasks = flatten_tasks(inspections)

        logger.info(f"[inspections] Returning {len(tasks)} tasks for RO {ro_number}")
        return InspectionSummary(
            roId=ro.get("id"),
            roNumber=ro.get("repairOrderNumber"),
            customer=customer_name(ro),
            vehicle=vehicle_name(ro),
            tasks=tasks,
        )
