"""Registration of the HTTP routes."""

from __future__ import annotations

from fastapi import Cookie, Depends, FastAPI, Query, Response

from ..core.models import Task, UserProfile
from ..data.chat import DEFAULT_LIMIT
from ..errors import InvalidInput, Unauthorized
from ..services import Services
from .schemas import (
    ChatBody,
    CreateGroupBody,
    GroupTasksBody,
    InviteBody,
    KickBody,
    LoginBody,
    OrderBody,
    RegisterBody,
    SettingsBody,
    SyncBody,
)

SESSION_COOKIE = "auth_session"


def _profile_update(profile: UserProfile) -> dict:
    return {
        "success": True,
        "settings": profile.settings.dump(),
        "username": profile.username,
        "usernameChangeCount": profile.username_change_count,
        "avatar": profile.avatar,
    }


def register_routes(app: FastAPI, services: Services) -> None:
    """Attach every API route to ``app``."""
    settings = services.settings
    identity = services.identity
    groups = services.groups
    chat = services.chat

    def set_session_cookie(response: Response, token: str) -> None:
        response.set_cookie(
            SESSION_COOKIE,
            token,
            max_age=settings.session_days * 24 * 60 * 60,
            path="/",
            httponly=True,
            secure=settings.is_production,
            samesite="strict",
        )

    def current_user(auth_session: str | None = Cookie(default=None)) -> str:
        if not auth_session:
            raise Unauthorized()
        return services.tokens.verify(auth_session)["uid"]

    def optional_user(auth_session: str | None = Cookie(default=None)) -> str | None:
        try:
            return services.tokens.verify(auth_session)["uid"]
        except Unauthorized:
            return None

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    @app.post("/api/auth/register", status_code=201)
    async def register(body: RegisterBody, response: Response) -> dict:
        session = await identity.register(body.email, body.password, body.language)
        set_session_cookie(response, session.token)
        return {"success": True, "user": session.view()}

    @app.post("/api/auth/login")
    async def login(body: LoginBody, response: Response) -> dict:
        session = await identity.login(body.identifier, body.password)
        set_session_cookie(response, session.token)
        return {"success": True, "user": session.view()}

    @app.post("/api/auth/logout")
    async def logout(response: Response) -> dict:
        response.delete_cookie(
            SESSION_COOKIE,
            path="/",
            httponly=True,
            secure=settings.is_production,
            samesite="strict",
        )
        return {"message": "Logged out"}

    @app.get("/api/auth/me")
    async def me(uid: str = Depends(current_user)) -> dict:
        return {"isAuthenticated": True, "user": await identity.get_session(uid)}

    @app.get("/api/auth/check-username")
    async def check_username(
        username: str = Query(default=""),
        uid: str | None = Depends(optional_user),
    ) -> dict:
        if not username:
            raise InvalidInput("Username required")
        available, reason = await identity.check_username_available(username, uid)
        result: dict = {"available": available}
        if reason:
            result["reason"] = reason
        return result

    # ------------------------------------------------------------------
    # Personal data
    # ------------------------------------------------------------------
    @app.post("/api/user/settings")
    async def update_settings(
        body: SettingsBody, uid: str = Depends(current_user)
    ) -> dict:
        profile = await identity.update_settings(
            uid,
            theme_id=body.theme_id,
            sound_enabled=body.sound_enabled,
            language=body.language,
            username=body.username,
            avatar=body.avatar,
        )
        return _profile_update(profile)

    @app.post("/api/user/data")
    async def sync_data(body: SyncBody, uid: str = Depends(current_user)) -> dict:
        if body.tasks is not None:
            await services.tasks.save_tasks(
                uid, body.tasks, body.force_empty, body.known_ids
            )
        if body.history is not None:
            await services.history.save_history(uid, body.history)
        if body.order is not None:
            await services.tasks.save_order(uid, body.order)
        return {"success": True}

    @app.put("/api/user/tasks/{task_id}")
    async def put_task(
        task_id: str, body: Task, uid: str = Depends(current_user)
    ) -> dict:
        if body.id != task_id:
            raise InvalidInput("Task id does not match the URL")
        await services.tasks.put_task(uid, body)
        return {"success": True}

    @app.delete("/api/user/tasks/{task_id}")
    async def delete_task(task_id: str, uid: str = Depends(current_user)) -> dict:
        return {"success": await services.tasks.delete_task(uid, task_id)}

    # ------------------------------------------------------------------
    # Groups and invites
    # ------------------------------------------------------------------
    @app.get("/api/groups")
    async def list_groups(uid: str = Depends(current_user)) -> dict:
        return {"groups": [g.dump() for g in await groups.list_groups(uid)]}

    @app.post("/api/groups", status_code=201)
    async def create_group(
        body: CreateGroupBody, uid: str = Depends(current_user)
    ) -> dict:
        group = await groups.create_group(uid, body.name)
        return {"success": True, "group": group.dump()}

    @app.delete("/api/groups/{gid}")
    async def delete_group(gid: str, uid: str = Depends(current_user)) -> dict:
        await groups.delete_group(gid, uid)
        return {"success": True}

    @app.get("/api/groups/{gid}/members")
    async def get_members(gid: str, uid: str = Depends(current_user)) -> dict:
        return {"members": [m.dump() for m in await groups.get_members(gid, uid)]}

    @app.post("/api/groups/{gid}/invite")
    async def invite(
        gid: str, body: InviteBody, uid: str = Depends(current_user)
    ) -> dict:
        await groups.invite(gid, uid, body.username)
        return {"success": True}

    @app.post("/api/groups/{gid}/kick")
    async def kick(gid: str, body: KickBody, uid: str = Depends(current_user)) -> dict:
        await groups.kick(gid, uid, body.user_id)
        return {"success": True}

    @app.post("/api/groups/{gid}/leave")
    async def leave(gid: str, uid: str = Depends(current_user)) -> dict:
        await groups.leave(gid, uid)
        return {"success": True}

    @app.get("/api/invites")
    async def list_invites(uid: str = Depends(current_user)) -> dict:
        return {"invites": [g.dump() for g in await groups.list_invites(uid)]}

    @app.post("/api/invites/{gid}/accept")
    async def accept_invite(gid: str, uid: str = Depends(current_user)) -> dict:
        group = await groups.accept_invite(gid, uid)
        return {"success": True, "group": group.dump()}

    @app.post("/api/invites/{gid}/decline")
    async def decline_invite(gid: str, uid: str = Depends(current_user)) -> dict:
        await groups.decline_invite(gid, uid)
        return {"success": True}

    # ------------------------------------------------------------------
    # Group tasks
    # ------------------------------------------------------------------
    @app.get("/api/groups/{gid}/tasks")
    async def get_group_tasks(gid: str, uid: str = Depends(current_user)) -> dict:
        return {"tasks": [t.dump() for t in await groups.get_tasks(gid, uid)]}

    @app.post("/api/groups/{gid}/tasks")
    async def save_group_tasks(
        gid: str, body: GroupTasksBody, uid: str = Depends(current_user)
    ) -> dict:
        await groups.save_tasks(gid, uid, body.tasks, body.force_empty, body.known_ids)
        return {"success": True}

    @app.post("/api/groups/{gid}/order")
    async def save_group_order(
        gid: str, body: OrderBody, uid: str = Depends(current_user)
    ) -> dict:
        await groups.save_order(gid, uid, body.order)
        return {"success": True}

    @app.put("/api/groups/{gid}/tasks/{task_id}")
    async def put_group_task(
        gid: str, task_id: str, body: Task, uid: str = Depends(current_user)
    ) -> dict:
        if body.id != task_id:
            raise InvalidInput("Task id does not match the URL")
        await groups.put_task(gid, uid, body)
        return {"success": True}

    @app.delete("/api/groups/{gid}/tasks/{task_id}")
    async def delete_group_task(
        gid: str, task_id: str, uid: str = Depends(current_user)
    ) -> dict:
        return {"success": await groups.delete_task(gid, uid, task_id)}

    # ------------------------------------------------------------------
    # Group chat
    # ------------------------------------------------------------------
    @app.get("/api/groups/{gid}/chat")
    async def get_chat(
        gid: str,
        limit: int = Query(default=DEFAULT_LIMIT),
        uid: str = Depends(current_user),
    ) -> dict:
        messages = await chat.get_messages(gid, uid, limit)
        return {"messages": [m.dump() for m in messages]}

    @app.post("/api/groups/{gid}/chat", status_code=201)
    async def post_chat(
        gid: str, body: ChatBody, uid: str = Depends(current_user)
    ) -> dict:
        message = await chat.post_message(gid, uid, body.text)
        return {"success": True, "message": message.dump()}
