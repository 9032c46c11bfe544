"""Shared API dependencies"""
from fastapi import Query


async def get_current_user_id(
    user_id: int = Query(..., gt=0, description="Authenticated user id, resolved by the auth gateway")
) -> int:
    return user_id
