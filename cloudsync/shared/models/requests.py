"""Pydantic request models accepted by the sync services.

Fields are optional at the type level so a missing field surfaces as the
service's own ValidationError with a readable message.
"""

# flake8: noqa: E501


from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CreateSyncTaskRequest(BaseModel):
    """Request to create a sync task."""

    task_type: Optional[str] = Field(
        None,
        description="Task kind (user_sync, permission_sync, group_sync, batch_user_sync)",
    )
    target_type: Optional[str] = Field(None, description="Target kind (user, group, account)")
    target_id: Optional[int] = Field(None, description="Local id of the target")
    cloud_account_id: Optional[int] = Field(None, description="Account performing the work")
    provider: Optional[str] = Field(None, description="Cloud provider")
    max_retries: Optional[int] = Field(None, ge=0, description="Retry budget (defaults to settings)")
    params: Optional[Dict[str, Any]] = Field(None, description="Routine parameters (regions, asset_types)")
