from .sessions import InMemorySessionStore, Session, SessionStore  # noqa
