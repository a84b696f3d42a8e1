from fastapi import APIRouter

from courseboard.api.routes import enrollments, leaderboard, quizzes, users

api_router = APIRouter()
api_router.include_router(enrollments.router)
api_router.include_router(quizzes.router)
api_router.include_router(leaderboard.router)
api_router.include_router(users.router)
