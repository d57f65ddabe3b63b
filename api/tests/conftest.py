import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.db import Base, get_db, make_engine
from app.main import app
from app.models import Reward, User
from app.security import make_access_token


@pytest.fixture(autouse=True)
def draw_settings(monkeypatch):
    monkeypatch.setattr(settings, "daily_spin_limit", 3)
    monkeypatch.setattr(settings, "claim_expiry_days", 7)
    monkeypatch.setattr(settings, "draw_timezone", "Asia/Kolkata")
    monkeypatch.setattr(settings, "jwt_secret", "test-secret")
    return settings


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def file_engine(tmp_path):
    """On-disk database so several threads can hold their own connections."""
    engine = make_engine(f"sqlite:///{tmp_path / 'lucky_draw.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def user(db):
    u = User(full_name="Test User", email="user@example.com")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def other_user(db):
    u = User(full_name="Other User", email="other@example.com")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def make_reward(db):
    def _make(name="Coffee voucher", weight=1.0, reward_type="voucher", **kwargs):
        reward = Reward(
            name=name,
            weight=weight,
            reward_type=reward_type,
            total_claimed=kwargs.pop("total_claimed", 0),
            active=kwargs.pop("active", True),
            **kwargs,
        )
        db.add(reward)
        db.commit()
        return reward

    return _make


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {make_access_token(user.id)}"}
