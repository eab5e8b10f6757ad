"""Response bodies for workflow instances."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flask import url_for

if TYPE_CHECKING:
    from certbind.workflow.steps import WorkflowInstance


def status_query_url(instance_id: str) -> str:
    return url_for("api.get_instance", instance_id=instance_id, _external=True)


def serialize_instance(instance: WorkflowInstance) -> dict[str, Any]:
    """Status document plus the URL it can be re-read from."""
    body = instance.to_status_dict()
    body["statusQueryGetUri"] = status_query_url(instance.id)
    return body


def serialize_started(instance_id: str) -> dict[str, Any]:
    """Body of a ``202 Accepted`` answer for a still-running instance."""
    return {
        "id": instance_id,
        "statusQueryGetUri": status_query_url(instance_id),
    }


def serialize_instance_list(instances: list[WorkflowInstance]) -> dict[str, Any]:
    return {
        "instances": [
            {
                "id": i.id,
                "name": i.name,
                "status": i.status.value,
                "custom_status": i.custom_status,
                "created_at": i.created_at.isoformat(),
                "updated_at": i.updated_at.isoformat(),
            }
            for i in instances
        ],
    }
