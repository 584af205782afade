"""API 依赖."""

from fastapi import HTTPException, Request

from feedhub.config import get_settings


async def get_current_user(request: Request) -> str:
    """从身份层写入的请求头获取用户标识."""
    header = get_settings().user_id_header
    user_id = request.headers.get(header, "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="未认证")
    return user_id
