from enum import Enum
from datetime import datetime
from app import db

class UserRole(Enum):
    VIEWER = "Viewer"
    ADMIN = "Admin"


class User(db.Model):
    """Account record owned by the authentication layer; read here for ownership and roles"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    role = db.Column(db.Enum(UserRole), default=UserRole.VIEWER, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __init__(self, email, username=None, role=UserRole.VIEWER):
        self.email = email
        self.username = username
        self.role = role

    def is_admin(self):
        return self.role == UserRole.ADMIN

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'role': self.role.value if self.role else None,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<User {self.email}>'
