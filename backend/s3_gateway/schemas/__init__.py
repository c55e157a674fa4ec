from s3_gateway.schemas.storage import ListObjectsResponse, MessageResponse

__all__ = [
    "MessageResponse",
    "ListObjectsResponse",
]
