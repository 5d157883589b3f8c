from roomlink.session import Session, create_session

__all__ = ["Session", "create_session"]
