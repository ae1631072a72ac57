from pydantic import BaseModel, ConfigDict


class WebhookAckOut(BaseModel):
    ok: bool = True
    status: str
    event_id: str | None = None
    processed: int = 0
    applied: int = 0
    already_applied: int = 0
    unmatched: int = 0
    category_mismatched: int = 0
    removal_incomplete: int = 0

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "ok": True,
                "status": "acknowledged",
                "event_id": "evt_123",
                "processed": 1,
                "applied": 1,
                "already_applied": 0,
                "unmatched": 0,
                "category_mismatched": 0,
                "removal_incomplete": 0,
            }
        }
    )


class ChallengeOut(BaseModel):
    challengeResponse: str
