import logging
import time
from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Depends, Request, HTTPException, Response, Form
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError
from sqlalchemy.orm import Session
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from . import config, models, schemas, services
from .auth import GoTrueIdentity
from .database import engine, get_db
from .sessions import DashboardSession, SessionStore

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("neo_dashboard")

models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="NEO Dashboard")
app.add_middleware(CORSMiddleware, allow_origins=["*"])
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

sessions = SessionStore()
identity = GoTrueIdentity()
bearer = HTTPBearer(auto_error=False)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "http_status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_latency_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
)


class LoginRequired(Exception):
    pass


def get_identity():
    return identity


def current_session(request: Request) -> Optional[DashboardSession]:
    return request.state.session


def get_session(request: Request) -> DashboardSession:
    """The caller's session, created on first use."""

    session = request.state.session
    if session is None:
        session = sessions.create()
        request.state.session = session
        request.state.issue_cookie = True
    return session


def page_session(session: Optional[DashboardSession] = Depends(current_session)) -> DashboardSession:
    if session is None or session.user is None:
        raise LoginRequired()
    return session


async def api_session(
    session: Optional[DashboardSession] = Depends(current_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    idp=Depends(get_identity),
) -> DashboardSession:
    if credentials is not None:
        token = credentials.credentials
        session = session or sessions.get_by_token(token)
        if session is None:
            session = sessions.new()
            await session.resolve_token(idp, token)
            if session.user is not None:
                sessions.add(session)
        else:
            await session.resolve_token(idp, token)
            sessions.bind_token(session)
    if session is None or session.user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session


def set_session_cookie(response: Response, session: DashboardSession) -> None:
    response.set_cookie(config.SESSION_COOKIE, session.id, httponly=True, samesite="lax")


@app.middleware("http")
async def session_middleware(request: Request, call_next):
    request.state.session = sessions.get(request.cookies.get(config.SESSION_COOKIE))
    request.state.issue_cookie = False
    response = await call_next(request)
    if request.state.issue_cookie:
        set_session_cookie(response, request.state.session)
    return response


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    method = request.method
    endpoint = request.url.path
    start_time = time.monotonic()
    response = await call_next(request)
    duration = time.monotonic() - start_time
    REQUEST_COUNT.labels(method=method, endpoint=endpoint, http_status=response.status_code).inc()
    REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(duration)
    return response


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    return RedirectResponse("/login", status_code=303)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
    return templates.TemplateResponse(request, "error.html", {}, status_code=500)


def back_home() -> RedirectResponse:
    return RedirectResponse("/", status_code=303)


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date")


def parse_bool(value: str) -> bool:
    if value.lower() in {"true", "1"}:
        return True
    if value.lower() in {"false", "0"}:
        return False
    raise HTTPException(status_code=400, detail="Invalid hazardous")


# Pages

@app.get("/", response_class=HTMLResponse)
async def index(request: Request, session: DashboardSession = Depends(page_session)):
    await session.feed.ensure_loaded()
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "user": session.user,
            "feed": session.feed,
            "grouped": session.feed.grouped,
            "date_range": session.feed.available_date_range(),
            "notices": session.pop_notices(),
        },
    )


@app.post("/filters")
async def update_filters(
    show_hazardous_only: bool = Form(False),
    sort_by: str = Form("date"),
    sort_order: str = Form("asc"),
    start_date: str = Form(""),
    end_date: str = Form(""),
    session: DashboardSession = Depends(page_session),
):
    try:
        session.feed.set_filters(
            show_hazardous_only=show_hazardous_only,
            sort_by=sort_by,
            sort_order=sort_order,
            start_date=start_date,
            end_date=end_date,
        )
    except ValidationError:
        session.notices.append("Invalid filter options")
    return back_home()


@app.post("/refresh")
async def refresh(session: DashboardSession = Depends(page_session)):
    await session.feed.refresh()
    return back_home()


@app.post("/load-more")
async def load_more(session: DashboardSession = Depends(page_session)):
    await session.feed.load_more()
    return back_home()


@app.get("/neos/{neo_id}", response_class=HTMLResponse)
async def neo_detail(request: Request, neo_id: str, session: DashboardSession = Depends(page_session)):
    neo, error, status_code = None, None, 200
    try:
        neo = await services.fetch_details_enriched(neo_id)
    except services.NotFoundError:
        error, status_code = "NEO not found", 404
    except services.FeedError as exc:
        error, status_code = str(exc), 502
    return templates.TemplateResponse(
        request,
        "detail.html",
        {"user": session.user, "neo": neo, "error": error, "notices": session.pop_notices()},
        status_code=status_code,
    )


@app.get("/login", response_class=HTMLResponse)
async def login_page(request: Request, session: Optional[DashboardSession] = Depends(current_session)):
    if session is not None and session.user is not None:
        return back_home()
    notices = session.pop_notices() if session is not None else []
    return templates.TemplateResponse(request, "login.html", {"notices": notices})


@app.post("/login")
async def login(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    session: DashboardSession = Depends(get_session),
    idp=Depends(get_identity),
):
    if await session.sign_in(idp, email, password):
        return back_home()
    return templates.TemplateResponse(
        request,
        "login.html",
        {"email": email, "error": session.auth.error, "notices": []},
        status_code=400,
    )


@app.get("/signup", response_class=HTMLResponse)
async def signup_page(request: Request, session: Optional[DashboardSession] = Depends(current_session)):
    if session is not None and session.user is not None:
        return back_home()
    notices = session.pop_notices() if session is not None else []
    return templates.TemplateResponse(request, "signup.html", {"notices": notices})


@app.post("/signup")
async def signup(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    name: str = Form(""),
    session: DashboardSession = Depends(get_session),
    idp=Depends(get_identity),
):
    if await session.sign_up(idp, email, password, name or None):
        if session.user is None:
            return RedirectResponse("/login", status_code=303)
        return back_home()
    return templates.TemplateResponse(
        request,
        "signup.html",
        {"email": email, "name": name, "error": session.auth.error, "notices": []},
        status_code=400,
    )


@app.post("/logout")
async def logout(session: Optional[DashboardSession] = Depends(current_session), idp=Depends(get_identity)):
    response = RedirectResponse("/login", status_code=303)
    if session is None:
        return response
    await session.sign_out(idp)
    notices = session.pop_notices()
    sessions.drop(session.id)
    if notices:
        # the sign-out notice outlives the dropped session
        farewell = sessions.create()
        farewell.notices = notices
        set_session_cookie(response, farewell)
    else:
        response.delete_cookie(config.SESSION_COOKIE)
    return response


# JSON API

@app.get("/neos")
async def get_neos(
    start_date: str | None = None,
    end_date: str | None = None,
    hazardous: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    session: DashboardSession = Depends(api_session),
):
    changes = {}
    if start_date is not None:
        changes["start_date"] = parse_date(start_date) if start_date else None
    if end_date is not None:
        changes["end_date"] = parse_date(end_date) if end_date else None
    if hazardous is not None:
        changes["show_hazardous_only"] = parse_bool(hazardous)
    if sort_by is not None:
        changes["sort_by"] = sort_by
    if sort_order is not None:
        changes["sort_order"] = sort_order
    if changes:
        try:
            session.feed.set_filters(**changes)
        except ValidationError:
            raise HTTPException(status_code=400, detail="Invalid sort")

    await session.feed.ensure_loaded()
    return session.feed.state().model_dump(mode="json")


@app.post("/neos/refresh")
async def api_refresh(session: DashboardSession = Depends(api_session)):
    await session.feed.refresh()
    return session.feed.state().model_dump(mode="json")


@app.post("/neos/load-more")
async def api_load_more(session: DashboardSession = Depends(api_session)):
    await session.feed.load_more()
    return session.feed.state().model_dump(mode="json")


@app.get("/api/neos/{neo_id}")
async def get_neo(neo_id: str, session: DashboardSession = Depends(api_session)):
    try:
        neo = await services.fetch_details_enriched(neo_id)
    except services.NotFoundError:
        raise HTTPException(status_code=404, detail="Not Found")
    except services.FeedError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return neo.model_dump(mode="json")


def add_favorite(db: Session, user_id: str, fav: schemas.FavoriteCreate) -> models.Favorite:
    existing = db.query(models.Favorite).filter_by(user_id=user_id, neo_id=fav.neo_id).first()
    if existing:
        raise HTTPException(status_code=409, detail="Already a favorite")
    obj = models.Favorite(user_id=user_id, **fav.model_dump())
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@app.get("/favorites")
async def get_favorites(
    session: DashboardSession = Depends(api_session),
    db: Session = Depends(get_db),
):
    favs = (
        db.query(models.Favorite)
        .filter(models.Favorite.user_id == session.user.id)
        .order_by(models.Favorite.approach_date)
        .all()
    )
    return [schemas.FavoriteRead.model_validate(f) for f in favs]


@app.post("/favorites", status_code=201)
async def create_favorite(
    fav: schemas.FavoriteCreate,
    session: DashboardSession = Depends(api_session),
    db: Session = Depends(get_db),
):
    obj = add_favorite(db, session.user.id, fav)
    return schemas.FavoriteRead.model_validate(obj)


@app.post("/favorites/add")
async def create_favorite_form(
    neo_id: str = Form(...),
    neo_name: str = Form(...),
    approach_date: str = Form(...),
    is_hazardous: bool = Form(False),
    estimated_diameter: float = Form(...),
    session: DashboardSession = Depends(page_session),
    db: Session = Depends(get_db),
):
    fav = schemas.FavoriteCreate(
        neo_id=neo_id,
        neo_name=neo_name,
        approach_date=parse_date(approach_date),
        is_hazardous=is_hazardous,
        estimated_diameter=estimated_diameter,
    )
    try:
        add_favorite(db, session.user.id, fav)
        session.notices.append(f"Added {neo_name} to favorites")
    except HTTPException as exc:
        session.notices.append(exc.detail)
    return RedirectResponse(f"/neos/{neo_id}", status_code=303)


@app.delete("/favorites/{fav_id}", status_code=204)
async def delete_favorite(
    fav_id: int,
    session: DashboardSession = Depends(api_session),
    db: Session = Depends(get_db),
):
    fav = (
        db.query(models.Favorite)
        .filter(models.Favorite.id == fav_id, models.Favorite.user_id == session.user.id)
        .first()
    )
    if not fav:
        raise HTTPException(status_code=404, detail="Not Found")
    db.delete(fav)
    db.commit()
    return Response(status_code=204)


@app.get("/metrics")
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
