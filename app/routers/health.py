from fastapi import APIRouter

router = APIRouter(prefix="", tags=["health"])

SERVICE_NAME = "video-catalog"

@router.get("/health", include_in_schema=False)
def health():
    # liveness apenas: não toca S3/DynamoDB
    return {"status": "ok", "service": SERVICE_NAME}
