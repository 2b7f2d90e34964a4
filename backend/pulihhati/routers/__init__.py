from . import auth, chatbot, mood, notifications, safespace, upload, users

ALL_ROUTERS = (
    auth.router,
    users.router,
    safespace.router,
    notifications.router,
    mood.router,
    upload.router,
    chatbot.router,
)
