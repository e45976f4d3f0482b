"""
Database schema and operations for the plan catalog.
Handles storage of plans, their extra drawings and photos, scoped by company.
"""

from sqlalchemy import create_engine, Column, Integer, String, Float, DateTime, Boolean, JSON, ForeignKey
from sqlalchemy.orm import declarative_base, sessionmaker, relationship, Session
from sqlalchemy.orm.exc import StaleDataError
import uuid
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Sequence
from loguru import logger

from ..core.filename_codec import PlanMetadata, build_title

Base = declarative_base()

DRAWING_TYPES = ("1階平面図", "2階平面図", "3階平面図", "立面図", "断面図", "その他")

EDITABLE_FIELDS = {
    "layout": "layout",
    "floors": "floors",
    "totalArea": "total_area",
    "direction": "direction",
    "siteArea": "site_area",
    "features": "features",
}


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class StaleVersionError(Exception):
    """Raised when a plan was modified since the caller read it."""

    def __init__(self, plan_id: str, expected: Optional[int], actual: Optional[int]):
        super().__init__(f"Plan {plan_id} is at version {actual}, expected {expected}")
        self.plan_id = plan_id
        self.expected = expected
        self.actual = actual


class Plan(Base):
    """Represents an uploaded housing plan."""
    __tablename__ = 'plans'

    id = Column(String(36), primary_key=True, default=_new_id)
    company_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    layout = Column(String, nullable=False, default="-")
    floors = Column(String, nullable=False, default="-")
    total_area = Column(Float, nullable=False, default=0.0)
    direction = Column(String, nullable=False, default="-")
    site_area = Column(Float, nullable=False, default=0.0)
    features = Column(JSON, nullable=False, default=list)
    pdf_path = Column(String, nullable=False)
    thumbnail_path = Column(String)
    original_filename = Column(String, nullable=False)
    favorite = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=1)
    created_by = Column(String)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    drawings = relationship("Drawing", back_populates="plan", cascade="all, delete-orphan",
                            order_by="Drawing.created_at.desc()")
    photos = relationship("Photo", back_populates="plan", cascade="all, delete-orphan",
                          order_by="Photo.created_at.desc()")

    # The row version is checked and bumped by every UPDATE
    __mapper_args__ = {"version_id_col": version}

    def touch(self):
        self.updated_at = _utcnow()

    def __repr__(self):
        return f"<Plan(id={self.id}, title='{self.title}', company_id='{self.company_id}')>"


class Drawing(Base):
    """Additional drawing attached to a plan (floor plans, elevations, sections)."""
    __tablename__ = 'drawings'

    id = Column(String(36), primary_key=True, default=_new_id)
    plan_id = Column(String(36), ForeignKey('plans.id'), nullable=False)
    type = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    original_filename = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    plan = relationship("Plan", back_populates="drawings")

    def __repr__(self):
        return f"<Drawing(id={self.id}, plan_id={self.plan_id}, type='{self.type}')>"


class Photo(Base):
    """Photo attached to a plan."""
    __tablename__ = 'photos'

    id = Column(String(36), primary_key=True, default=_new_id)
    plan_id = Column(String(36), ForeignKey('plans.id'), nullable=False)
    file_path = Column(String, nullable=False)
    original_filename = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    plan = relationship("Plan", back_populates="photos")

    def __repr__(self):
        return f"<Photo(id={self.id}, plan_id={self.plan_id})>"


def plan_to_dict(plan: Plan) -> Dict[str, Any]:
    """Render a plan with its drawings and photos as a camelCase record."""
    return {
        "id": plan.id,
        "companyId": plan.company_id,
        "title": plan.title,
        "layout": plan.layout,
        "floors": plan.floors,
        "totalArea": plan.total_area,
        "direction": plan.direction,
        "siteArea": plan.site_area,
        "features": list(plan.features or []),
        "pdfPath": plan.pdf_path,
        "thumbnailPath": plan.thumbnail_path,
        "originalFilename": plan.original_filename,
        "favorite": bool(plan.favorite),
        "version": plan.version,
        "createdAt": _isoformat(plan.created_at),
        "updatedAt": _isoformat(plan.updated_at),
        "drawings": [
            {
                "id": d.id,
                "type": d.type,
                "filePath": d.file_path,
                "originalFilename": d.original_filename,
                "uploadedAt": _isoformat(d.created_at),
            }
            for d in plan.drawings
        ],
        "photos": [
            {
                "id": p.id,
                "filePath": p.file_path,
                "originalFilename": p.original_filename,
                "uploadedAt": _isoformat(p.created_at),
            }
            for p in plan.photos
        ],
    }


class DatabaseManager:
    """Manages database connections and plan operations."""

    def __init__(self, database_url: str = "sqlite:///planfinder.db"):
        """
        Initialize database manager.

        Args:
            database_url: Database connection URL
        """
        self.database_url = database_url
        self.engine = None
        self.SessionLocal = None
        self._initialize_database()

    def _initialize_database(self):
        """Initialize database connection and create tables."""
        try:
            engine_kwargs: Dict[str, Any] = {"pool_pre_ping": True}
            if self.database_url.startswith("sqlite"):
                engine_kwargs["connect_args"] = {"check_same_thread": False}
            else:
                engine_kwargs.update(pool_size=10, max_overflow=20)

            self.engine = create_engine(self.database_url, **engine_kwargs)

            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
                bind=self.engine
            )

            # Create tables
            Base.metadata.create_all(bind=self.engine)

            logger.info(f"Database initialized: {self.database_url}")

        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def get_session(self) -> Session:
        """Get database session."""
        return self.SessionLocal()

    def _commit_plan(self, session: Session, plan_id: str, expected_version: Optional[int] = None):
        """
        Commit a plan mutation. The UPDATE only matches the version that was
        read, so a concurrent writer turns this into StaleVersionError.
        """
        try:
            session.commit()
        except StaleDataError as e:
            session.rollback()
            current = session.get(Plan, plan_id)
            actual = current.version if current else None
            logger.warning(f"Concurrent update of plan {plan_id} detected (now version {actual})")
            raise StaleVersionError(plan_id, expected_version, actual) from e

    def create_plan(self, company_id: str, metadata: PlanMetadata, pdf_path: str,
                    thumbnail_path: Optional[str] = None,
                    created_by: Optional[str] = None) -> Dict[str, Any]:
        """Create a new plan record. The title is rebuilt from the fields."""
        with self.get_session() as session:
            plan = Plan(
                company_id=company_id,
                title=build_title(metadata.total_area, metadata.layout, metadata.floors, metadata.direction),
                layout=metadata.layout,
                floors=metadata.floors,
                total_area=metadata.total_area,
                direction=metadata.direction,
                site_area=metadata.site_area,
                features=list(metadata.features),
                pdf_path=pdf_path,
                thumbnail_path=thumbnail_path,
                original_filename=metadata.original_filename,
                created_by=created_by,
            )

            session.add(plan)
            session.commit()
            session.refresh(plan)

            logger.info(f"Created plan: {plan.id} ({plan.title})")
            return plan_to_dict(plan)

    def get_plan(self, plan_id: str) -> Optional[Dict[str, Any]]:
        """Get plan by ID."""
        with self.get_session() as session:
            plan = session.get(Plan, plan_id)
            return plan_to_dict(plan) if plan else None

    def list_plans(self, company_id: str) -> List[Dict[str, Any]]:
        """Get all plans of a company, newest first."""
        with self.get_session() as session:
            plans = (
                session.query(Plan)
                .filter(Plan.company_id == company_id)
                .order_by(Plan.created_at.desc())
                .all()
            )
            return [plan_to_dict(plan) for plan in plans]

    def count_plans(self, company_id: str) -> int:
        with self.get_session() as session:
            return session.query(Plan).filter(Plan.company_id == company_id).count()

    def update_plan(self, plan_id: str, changes: Dict[str, Any],
                    expected_version: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """
        Update editable plan fields and regenerate the title.

        Args:
            plan_id: Plan to update
            changes: camelCase field values (layout, floors, totalArea, direction, siteArea, features)
            expected_version: Version the caller last read; None skips the check

        Returns:
            Updated plan record, or None if the plan does not exist

        Raises:
            StaleVersionError: if expected_version does not match
        """
        with self.get_session() as session:
            plan = session.get(Plan, plan_id)
            if plan is None:
                return None

            if expected_version is not None and plan.version != expected_version:
                raise StaleVersionError(plan_id, expected_version, plan.version)

            for key, attribute in EDITABLE_FIELDS.items():
                if key in changes and changes[key] is not None:
                    value = changes[key]
                    if key == "features":
                        value = list(value)
                    setattr(plan, attribute, value)

            plan.title = build_title(plan.total_area, plan.layout, plan.floors, plan.direction)
            plan.touch()

            self._commit_plan(session, plan_id, plan.version)
            session.refresh(plan)

            logger.info(f"Updated plan: {plan.id} -> version {plan.version}")
            return plan_to_dict(plan)

    def toggle_favorite(self, plan_id: str) -> Optional[Dict[str, Any]]:
        """Flip the favorite flag."""
        with self.get_session() as session:
            plan = session.get(Plan, plan_id)
            if plan is None:
                return None

            plan.favorite = not plan.favorite
            plan.touch()
            self._commit_plan(session, plan_id, plan.version)
            session.refresh(plan)
            return plan_to_dict(plan)

    def delete_plan(self, plan_id: str) -> Optional[List[str]]:
        """
        Delete plan and all related records.

        Returns:
            Storage paths of the plan's files, or None if the plan does not exist
        """
        with self.get_session() as session:
            plan = session.get(Plan, plan_id)
            if plan is None:
                return None

            paths = [plan.pdf_path]
            if plan.thumbnail_path:
                paths.append(plan.thumbnail_path)
            paths.extend(d.file_path for d in plan.drawings)
            paths.extend(p.file_path for p in plan.photos)

            session.delete(plan)  # Cascade will handle drawings and photos
            self._commit_plan(session, plan_id, plan.version)
            logger.info(f"Deleted plan: {plan_id}")
            return paths

    def add_drawing(self, plan_id: str, drawing_type: str, file_path: str,
                    original_filename: str) -> Optional[Dict[str, Any]]:
        """Attach a drawing to a plan."""
        if drawing_type not in DRAWING_TYPES:
            raise ValueError(f"Unknown drawing type: {drawing_type}")

        with self.get_session() as session:
            plan = session.get(Plan, plan_id)
            if plan is None:
                return None

            plan.drawings.append(Drawing(
                type=drawing_type,
                file_path=file_path,
                original_filename=original_filename,
            ))
            plan.touch()
            self._commit_plan(session, plan_id, plan.version)
            session.refresh(plan)
            return plan_to_dict(plan)

    def remove_drawing(self, plan_id: str, drawing_id: str) -> Optional[str]:
        """Detach a drawing; returns its storage path, or None if not found."""
        with self.get_session() as session:
            drawing = session.get(Drawing, drawing_id)
            if drawing is None or drawing.plan_id != plan_id:
                return None

            file_path = drawing.file_path
            drawing.plan.touch()
            session.delete(drawing)
            self._commit_plan(session, plan_id)
            return file_path

    def add_photo(self, plan_id: str, file_path: str,
                  original_filename: str) -> Optional[Dict[str, Any]]:
        """Attach a photo to a plan."""
        with self.get_session() as session:
            plan = session.get(Plan, plan_id)
            if plan is None:
                return None

            plan.photos.append(Photo(file_path=file_path, original_filename=original_filename))
            plan.touch()
            self._commit_plan(session, plan_id, plan.version)
            session.refresh(plan)
            return plan_to_dict(plan)

    def remove_photo(self, plan_id: str, photo_id: str) -> Optional[str]:
        """Detach a photo; returns its storage path, or None if not found."""
        with self.get_session() as session:
            photo = session.get(Photo, photo_id)
            if photo is None or photo.plan_id != plan_id:
                return None

            file_path = photo.file_path
            photo.plan.touch()
            session.delete(photo)
            self._commit_plan(session, plan_id)
            return file_path

    def get_database_stats(self, company_id: Optional[str] = None) -> Dict[str, Any]:
        """Get catalog statistics, optionally for one company."""
        with self.get_session() as session:
            query = session.query(Plan)
            if company_id:
                query = query.filter(Plan.company_id == company_id)
            plans: Sequence[Plan] = query.all()

            stats: Dict[str, Any] = {
                'plans': len(plans),
                'favorites': sum(1 for p in plans if p.favorite),
                'drawings': sum(len(p.drawings) for p in plans),
                'photos': sum(len(p.photos) for p in plans),
            }

            by_layout: Dict[str, int] = {}
            by_floors: Dict[str, int] = {}
            for plan in plans:
                by_layout[plan.layout] = by_layout.get(plan.layout, 0) + 1
                by_floors[plan.floors] = by_floors.get(plan.floors, 0) + 1

            stats['by_layout'] = by_layout
            stats['by_floors'] = by_floors
            return stats

    def close(self):
        """Close database connections."""
        if self.engine:
            self.engine.dispose()
            logger.info("Database connections closed")
