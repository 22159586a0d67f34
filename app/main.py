from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import get_logger, setup_logging
from app.api.v1.academic_years.router import router as academic_years_router
from app.api.v1.semesters.router import router as semesters_router
from app.api.v1.registrations.router import router as registrations_router
from app.api.v1.course_uploads.router import router as course_uploads_router
from app.api.v1.lecturer_courses.router import router as lecturer_courses_router
from app.api.v1.registration_cards.router import router as registration_cards_router
from app.api.v1.timetables.router import router as timetables_router
from app.api.v1.notifications.router import router as notifications_router


def create_app() -> FastAPI:
    setup_logging(settings)
    app = FastAPI(title="Registration & Scheduling Backend")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(academic_years_router)
    app.include_router(semesters_router)
    app.include_router(registrations_router)
    app.include_router(course_uploads_router)
    app.include_router(lecturer_courses_router)
    app.include_router(registration_cards_router)
    app.include_router(timetables_router)
    app.include_router(notifications_router)

    get_logger(__name__).info("app_created", environment=settings.environment)
    return app


app = create_app()
