from fastapi import APIRouter

from .bookings import router as bookings_router
from .credits import router as credits_router
from .internal import router as internal_router
from .sunday import router as sunday_router

api_router = APIRouter()
# prefix 는 각 router 파일 내부에서 정의되어 있음
api_router.include_router(bookings_router)
api_router.include_router(credits_router)
api_router.include_router(sunday_router)
api_router.include_router(internal_router)
