from config import Settings
from security import SessionData, seal_session, unseal_session


def test_sealed_session_reads_back(settings):
    blob = seal_session(SessionData(uid=7, username='kassa', password='geheim'), settings)

    assert 'geheim' not in blob
    session = unseal_session(blob, settings)
    assert session == SessionData(uid=7, username='kassa', password='geheim', isLoggedIn=True)


def test_tampered_or_foreign_blob_is_rejected(settings):
    blob = seal_session(SessionData(uid=7, username='kassa', password='geheim'), settings)
    other = Settings(session_secret='another-secret-entirely-different')

    assert unseal_session(blob[:-4] + 'AAAA', settings) is None
    assert unseal_session(blob, other) is None
    assert unseal_session('not a cookie', settings) is None
    assert unseal_session('', settings) is None
    assert unseal_session(None, settings) is None


def test_expired_session_is_rejected(settings):
    short = Settings(session_secret=settings.session_secret, session_max_age=-10)
    blob = seal_session(SessionData(uid=7, username='kassa', password='geheim'), short)
    assert unseal_session(blob, settings) is None


def test_logged_out_session_is_rejected(settings):
    blob = seal_session(SessionData(uid=7, username='kassa', password='geheim', isLoggedIn=False), settings)
    assert unseal_session(blob, settings) is None
