"""Student clubs: membership, join requests, events, chat, club announcements and invites."""
import logging
import secrets
import string
from datetime import datetime

from fastapi import APIRouter, HTTPException

from app.api.deps import CurrentUser
from app.models.club import (
    ROLE_HEAD_PRESIDENT,
    ROLE_MEMBER,
    ChatCreate,
    ChatMessage,
    Club,
    ClubAnnouncement,
    ClubAnnouncementCreate,
    ClubCreate,
    ClubEvent,
    ClubMetaUpdate,
    Comment,
    CommentCreate,
    EventCreate,
    InviteLink,
    InviteLinkCreate,
    InviteUser,
    JoinRequest,
    JoinRequestCreate,
    RequestState,
    RoleAssignment,
    RolesUpdate,
    serialize_club,
)
from app.models.common import to_naive_utc
from app.models.notification import NotificationType
from app.models.user import User, UserRole
from app.services.access import get_user_or_404, safe_object_id
from app.services.notifications import notify

logger = logging.getLogger(__name__)

router = APIRouter()

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 6


async def _get_club(club_id: str) -> Club:
    oid = safe_object_id(club_id)
    club = await Club.get(oid) if oid else None
    if not club or not club.is_active:
        raise HTTPException(status_code=404, detail="Kulüp bulunamadı")
    return club


def _ensure_leader(club: Club, user: User) -> None:
    if user.role != UserRole.ADMIN and not club.is_leader(user.username):
        raise HTTPException(status_code=403, detail="Bu işlem için kulüp başkanı olmalısınız")


def _ensure_member(club: Club, user: User) -> None:
    if user.role != UserRole.ADMIN and not club.is_member(user.username):
        raise HTTPException(status_code=403, detail="Bu işlem için kulüp üyesi olmalısınız")


def _find(items: list, item_id: str, detail: str):
    for item in items:
        if item.id == item_id:
            return item
    raise HTTPException(status_code=404, detail=detail)


async def _save(club: Club) -> None:
    club.updated_at = datetime.utcnow()
    await club.save()


async def _new_invite_code() -> str:
    while True:
        code = "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))
        if not await Club.find_one({"invite_links.code": code}):
            return code


# --- Clubs ---


@router.get("/")
async def list_clubs(user: CurrentUser):
    clubs = await Club.find(Club.is_active == True).sort("name").to_list()
    return [serialize_club(c) for c in clubs]


@router.get("/user/{user_id}")
async def list_user_clubs(user_id: str, user: CurrentUser):
    clubs = await Club.find({"members": user_id, "is_active": True}).sort("name").to_list()
    return [serialize_club(c) for c in clubs]


@router.get("/invites/me")
async def my_invites(user: CurrentUser):
    clubs = await Club.find({"is_active": True, "requests.user_id": user.username}).to_list()
    invites = []
    for club in clubs:
        for req in club.requests:
            if req.user_id == user.username and req.status == RequestState.PENDING and req.invited_by:
                invites.append(
                    {
                        "club_id": str(club.id),
                        "club_name": club.name,
                        "request_id": req.id,
                        "invited_by": req.invited_by,
                        "created_at": req.created_at,
                    }
                )
    return invites


@router.post("/join-by-link/{code}")
async def join_by_link(code: str, user: CurrentUser):
    code = code.upper()
    club = await Club.find_one({"invite_links.code": code, "is_active": True})
    if not club:
        raise HTTPException(status_code=404, detail="Davet bağlantısı bulunamadı")
    link = next(l for l in club.invite_links if l.code == code)
    if link.is_expired():
        raise HTTPException(status_code=400, detail="Davet bağlantısının süresi dolmuş")
    if link.is_exhausted():
        raise HTTPException(status_code=400, detail="Davet bağlantısı zaten kullanılmış")
    if club.is_member(user.username):
        raise HTTPException(status_code=400, detail="Kullanıcı zaten üye")
    club.add_member(user.username, ROLE_MEMBER)
    link.used_by.append(user.username)
    await _save(club)
    logger.info("%s joined club %s via invite link", user.username, club.name)
    return serialize_club(club)


@router.post("/", status_code=201)
async def create_club(data: ClubCreate, user: CurrentUser):
    if user.role not in (UserRole.ADMIN, UserRole.TEACHER):
        raise HTTPException(status_code=403, detail="Kulüp oluşturma yetkiniz yok")
    president_id = user.username
    if data.president_id:
        president_id = (await get_user_or_404(data.president_id)).username
    club = Club(
        name=data.name.strip(),
        description=data.description,
        logo=data.logo,
        social_links=data.social_links,
        president_id=president_id,
    )
    club.add_member(president_id, ROLE_HEAD_PRESIDENT)
    await club.insert()
    return serialize_club(club, detailed=True)


@router.get("/{club_id}")
async def get_club(club_id: str, user: CurrentUser):
    return serialize_club(await _get_club(club_id), detailed=True)


@router.put("/{club_id}")
async def update_club(club_id: str, data: ClubMetaUpdate, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    for key, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(club, key, value)
    await _save(club)
    return serialize_club(club, detailed=True)


@router.delete("/{club_id}")
async def delete_club(club_id: str, user: CurrentUser):
    if user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Bu işlem için yetkiniz yok")
    club = await _get_club(club_id)
    club.is_active = False
    await _save(club)
    return {"success": True, "message": "Kulüp silindi"}


# --- Members and roles ---


@router.delete("/{club_id}/members/{member_id}")
async def remove_member(club_id: str, member_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    if user.username != member_id:
        _ensure_leader(club, user)
    if not club.is_member(member_id):
        raise HTTPException(status_code=404, detail="Üye bulunamadı")
    if member_id == club.president_id:
        raise HTTPException(status_code=400, detail="Kulüp başkanı kulüpten çıkarılamaz")
    club.remove_member(member_id)
    await _save(club)
    return serialize_club(club)


@router.put("/{club_id}/members/{member_id}/role")
async def change_member_role(club_id: str, member_id: str, data: RoleAssignment, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    if not club.is_member(member_id):
        raise HTTPException(status_code=404, detail="Üye bulunamadı")
    club.roles[member_id] = data.role.strip()
    await _save(club)
    return serialize_club(club)


@router.patch("/{club_id}/roles")
async def update_roles(club_id: str, data: RolesUpdate, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    unknown = [m for m in data.roles if not club.is_member(m)]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Kulüp üyesi olmayan kullanıcılar: {', '.join(unknown)}")
    club.roles.update({m: r.strip() for m, r in data.roles.items()})
    await _save(club)
    return serialize_club(club)


# --- Join requests ---


@router.get("/{club_id}/requests")
async def list_join_requests(club_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    return [r.model_dump() for r in club.requests]


@router.post("/{club_id}/requests", status_code=201)
async def create_join_request(club_id: str, data: JoinRequestCreate, user: CurrentUser):
    club = await _get_club(club_id)
    if club.is_member(user.username):
        raise HTTPException(status_code=400, detail="Kullanıcı zaten üye")
    if any(r.user_id == user.username and r.status == RequestState.PENDING for r in club.requests):
        raise HTTPException(status_code=400, detail="Bekleyen bir katılım isteğiniz zaten var")
    req = JoinRequest(user_id=user.username, user_name=user.full_name, message=data.message)
    club.requests.append(req)
    await _save(club)
    leaders = [m for m in club.members if club.is_leader(m)]
    await notify(
        leaders,
        f"{club.name}: yeni katılım isteği",
        f"{user.full_name} kulübe katılmak istiyor",
        type=NotificationType.REQUEST,
        sender_id=user.username,
    )
    return req.model_dump()


def _ensure_can_answer(club: Club, req: JoinRequest, user: User) -> None:
    # An invitee answers their own invite; other requests need a leader.
    if req.invited_by and req.user_id == user.username:
        return
    _ensure_leader(club, user)


@router.post("/{club_id}/requests/{request_id}/accept")
async def accept_join_request(club_id: str, request_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    req = _find(club.requests, request_id, "Katılım isteği bulunamadı")
    _ensure_can_answer(club, req, user)
    if req.status != RequestState.PENDING:
        raise HTTPException(status_code=400, detail="Bu istek zaten yanıtlanmış")
    req.status = RequestState.ACCEPTED
    club.add_member(req.user_id, ROLE_MEMBER)
    await _save(club)
    if req.user_id != user.username:
        await notify(
            [req.user_id],
            f"{club.name}",
            "Kulüp katılım isteğiniz kabul edildi",
            type=NotificationType.APPROVAL,
            sender_id=user.username,
        )
    return serialize_club(club)


@router.post("/{club_id}/requests/{request_id}/reject")
async def reject_join_request(club_id: str, request_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    req = _find(club.requests, request_id, "Katılım isteği bulunamadı")
    _ensure_can_answer(club, req, user)
    if req.status != RequestState.PENDING:
        raise HTTPException(status_code=400, detail="Bu istek zaten yanıtlanmış")
    req.status = RequestState.REJECTED
    await _save(club)
    return req.model_dump()


@router.delete("/{club_id}/requests/{request_id}")
async def delete_join_request(club_id: str, request_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    req = _find(club.requests, request_id, "Katılım isteği bulunamadı")
    if req.user_id != user.username:
        _ensure_leader(club, user)
    club.requests = [r for r in club.requests if r.id != request_id]
    await _save(club)
    return {"success": True}


@router.post("/{club_id}/invite", status_code=201)
async def invite_user(club_id: str, data: InviteUser, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    invitee = await get_user_or_404(data.user_id)
    if club.is_member(invitee.username):
        raise HTTPException(status_code=400, detail="Kullanıcı zaten üye")
    if any(r.user_id == invitee.username and r.status == RequestState.PENDING for r in club.requests):
        raise HTTPException(status_code=400, detail="Bu kullanıcı için bekleyen bir istek var")
    req = JoinRequest(user_id=invitee.username, user_name=invitee.full_name, invited_by=user.username)
    club.requests.append(req)
    await _save(club)
    await notify(
        [invitee.username],
        f"{club.name} kulübüne davet edildiniz",
        f"{user.full_name} sizi {club.name} kulübüne davet etti",
        type=NotificationType.REQUEST,
        sender_id=user.username,
        action_url=f"/clubs/{club.id}",
    )
    return req.model_dump()


# --- Events ---


@router.get("/{club_id}/events")
async def list_events(club_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    return [e.model_dump() for e in sorted(club.events, key=lambda e: e.starts_at)]


@router.post("/{club_id}/events", status_code=201)
async def create_event(club_id: str, data: EventCreate, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    starts_at = to_naive_utc(data.starts_at)
    ends_at = to_naive_utc(data.ends_at) if data.ends_at else None
    if ends_at and ends_at <= starts_at:
        raise HTTPException(status_code=400, detail="Bitiş zamanı başlangıçtan sonra olmalıdır")
    event = ClubEvent(
        title=data.title,
        description=data.description,
        location=data.location,
        starts_at=starts_at,
        ends_at=ends_at,
        created_by=user.username,
    )
    club.events.append(event)
    await _save(club)
    await notify(
        [m for m in club.members if m != user.username],
        f"{club.name}: yeni etkinlik",
        event.title,
        type=NotificationType.REMINDER,
        sender_id=user.username,
    )
    return event.model_dump()


@router.delete("/{club_id}/events/{event_id}")
async def delete_event(club_id: str, event_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    _find(club.events, event_id, "Etkinlik bulunamadı")
    club.events = [e for e in club.events if e.id != event_id]
    await _save(club)
    return {"success": True}


@router.post("/{club_id}/events/{event_id}/join")
async def join_event(club_id: str, event_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_member(club, user)
    event = _find(club.events, event_id, "Etkinlik bulunamadı")
    if user.username not in event.attendees:
        event.attendees.append(user.username)
        await _save(club)
    return event.model_dump()


@router.post("/{club_id}/events/{event_id}/leave")
async def leave_event(club_id: str, event_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    event = _find(club.events, event_id, "Etkinlik bulunamadı")
    event.attendees = [a for a in event.attendees if a != user.username]
    await _save(club)
    return event.model_dump()


# --- Chat ---


@router.get("/{club_id}/chats")
async def list_chats(club_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_member(club, user)
    return [m.model_dump() for m in club.chats]


@router.post("/{club_id}/chats", status_code=201)
async def post_chat(club_id: str, data: ChatCreate, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_member(club, user)
    if data.reply_to:
        _find(club.chats, data.reply_to, "Yanıtlanan mesaj bulunamadı")
    message = ChatMessage(
        sender_id=user.username,
        sender_name=user.full_name,
        text=data.text,
        message_type=data.message_type,
        reply_to=data.reply_to,
    )
    club.chats.append(message)
    await _save(club)
    return message.model_dump()


@router.delete("/{club_id}/chats/{message_id}")
async def delete_chat(club_id: str, message_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    message = _find(club.chats, message_id, "Mesaj bulunamadı")
    if message.sender_id != user.username:
        _ensure_leader(club, user)
    message.is_deleted = True
    message.text = "Bu mesaj silindi"
    await _save(club)
    return message.model_dump()


# --- Club announcements ---


@router.get("/{club_id}/announcements")
async def list_club_announcements(club_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    return [a.model_dump() for a in sorted(club.announcements, key=lambda a: a.created_at, reverse=True)]


@router.post("/{club_id}/announcements", status_code=201)
async def create_club_announcement(club_id: str, data: ClubAnnouncementCreate, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    announcement = ClubAnnouncement(title=data.title, content=data.content, author_id=user.username)
    club.announcements.append(announcement)
    await _save(club)
    await notify(
        [m for m in club.members if m != user.username],
        f"{club.name}: {announcement.title}",
        announcement.content[:200],
        type=NotificationType.ANNOUNCEMENT,
        sender_id=user.username,
    )
    return announcement.model_dump()


@router.delete("/{club_id}/announcements/{announcement_id}")
async def delete_club_announcement(club_id: str, announcement_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    _find(club.announcements, announcement_id, "Duyuru bulunamadı")
    club.announcements = [a for a in club.announcements if a.id != announcement_id]
    await _save(club)
    return {"success": True}


@router.post("/{club_id}/announcements/{announcement_id}/comments", status_code=201)
async def comment_club_announcement(club_id: str, announcement_id: str, data: CommentCreate, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_member(club, user)
    announcement = _find(club.announcements, announcement_id, "Duyuru bulunamadı")
    comment = Comment(user_id=user.username, user_name=user.full_name, text=data.text)
    announcement.comments.append(comment)
    await _save(club)
    return comment.model_dump()


# --- Invite links ---


@router.get("/{club_id}/invite-links")
async def list_invite_links(club_id: str, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    return [
        {**l.model_dump(), "expired": l.is_expired(), "used": l.is_exhausted()}
        for l in club.invite_links
    ]


@router.post("/{club_id}/invite-links", status_code=201)
async def create_invite_link(club_id: str, data: InviteLinkCreate, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    link = InviteLink(code=await _new_invite_code(), created_by=user.username, one_time=data.one_time)
    club.invite_links.append(link)
    await _save(club)
    return link.model_dump()


@router.delete("/{club_id}/invite-links/{code}")
async def delete_invite_link(club_id: str, code: str, user: CurrentUser):
    club = await _get_club(club_id)
    _ensure_leader(club, user)
    code = code.upper()
    if not any(l.code == code for l in club.invite_links):
        raise HTTPException(status_code=404, detail="Davet bağlantısı bulunamadı")
    club.invite_links = [l for l in club.invite_links if l.code != code]
    await _save(club)
    return {"success": True}
