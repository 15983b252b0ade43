"""Project slug -> vendor integration lookup."""

from __future__ import annotations

from typing import Any, Optional

from app.integrations.mydoctor import MyDoctorRegistrar, MyDoctorSession
from app.integrations.registrar import ExternalRegistrar
from app.integrations.sessions import VendorSession
from app.integrations.tg_calabria import TGCalabriaRegistrar, TGCalabriaSession

REGISTRARS: dict[str, type[ExternalRegistrar]] = {
    MyDoctorRegistrar.slug: MyDoctorRegistrar,
    TGCalabriaRegistrar.slug: TGCalabriaRegistrar,
}

VENDOR_SESSIONS: dict[str, type[VendorSession]] = {
    MyDoctorSession.slug: MyDoctorSession,
    TGCalabriaSession.slug: TGCalabriaSession,
}


def get_registrar(slug: str, **kwargs: Any) -> Optional[ExternalRegistrar]:
    """Registrar for a project slug, or None when the project has no external user base."""
    cls = REGISTRARS.get(slug)
    return cls(**kwargs) if cls else None


def get_vendor_session(slug: str, **kwargs: Any) -> Optional[VendorSession]:
    cls = VENDOR_SESSIONS.get(slug)
    return cls(**kwargs) if cls else None
