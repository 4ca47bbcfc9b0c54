import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import bookmarks, collections, comments, conversations, hashtags, invites, messages, notifications
from app.api import green_points as green_points_api
from app.api import link_preview as link_preview_api
from app.api import marketplace as marketplace_api
from app.api import payments as payments_api
from app.api import posts as posts_api
from app.api import profiles as profiles_api
from app.config import settings
from app.database import create_tables
from app.errors import install_error_handlers

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="Honua")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_error_handlers(app)

app.include_router(posts_api.router, prefix="/api/posts", tags=["posts"])
app.include_router(comments.router, prefix="/api/comments", tags=["comments"])
app.include_router(hashtags.router, prefix="/api/hashtags", tags=["hashtags"])
app.include_router(collections.router, prefix="/api/collections", tags=["collections"])
app.include_router(bookmarks.router, prefix="/api/bookmarks", tags=["bookmarks"])
app.include_router(profiles_api.router, prefix="/api/profiles", tags=["profiles"])
app.include_router(conversations.router, prefix="/api/conversations", tags=["messaging"])
app.include_router(messages.router, prefix="/api/messages", tags=["messaging"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])
app.include_router(invites.router, prefix="/api/invites", tags=["invites"])
app.include_router(green_points_api.router, prefix="/api/green-points", tags=["green points"])
app.include_router(link_preview_api.router, prefix="/api/link-preview", tags=["link preview"])
app.include_router(marketplace_api.router, prefix="/api/marketplace", tags=["marketplace"])
app.include_router(payments_api.router, prefix="/api/payments", tags=["payments"])


@app.on_event("startup")
async def startup():
    await create_tables()


@app.get("/")
async def root():
    return {"message": "Honua API"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.HOST, port=settings.PORT)
