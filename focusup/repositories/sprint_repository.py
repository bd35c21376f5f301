"""
Sprint repository - Data access layer for FocusSprint model.
"""
from typing import List, Optional
from sqlalchemy.orm import Session

from focusup.models import FocusSprint


class SprintRepository:
    """Repository for FocusSprint data access"""

    @staticmethod
    def get_by_id(db: Session, sprint_id: int) -> Optional[FocusSprint]:
        """Get sprint by ID"""
        return db.query(FocusSprint).filter(FocusSprint.id == sprint_id).first()

    @staticmethod
    def get_recent(db: Session, user_id: str, limit: int = 10) -> List[FocusSprint]:
        """Get the user's most recent sprints"""
        return db.query(FocusSprint).filter(
            FocusSprint.user_id == user_id
        ).order_by(FocusSprint.id.desc()).limit(limit).all()

    @staticmethod
    def create(db: Session, sprint: FocusSprint) -> FocusSprint:
        """Create new sprint record"""
        db.add(sprint)
        db.commit()
        db.refresh(sprint)
        return sprint

    @staticmethod
    def update(db: Session, sprint: FocusSprint) -> FocusSprint:
        """Update existing sprint record"""
        db.commit()
        db.refresh(sprint)
        return sprint
