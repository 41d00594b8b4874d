from audit_log import AuditLog


def test_keeps_only_the_latest_events():
    audit = AuditLog(max_events=2)
    audit.login_failure('kassa', '10.0.0.1', 'Invalid credentials', 'pytest')
    audit.login_success(7, 'kassa', '10.0.0.1', 'pytest')
    audit.logout(7, 'kassa', '10.0.0.1')

    assert len(audit.events) == 2
    assert [e['type'] for e in audit.recent()] == ['logout', 'success']


def test_recent_limit():
    audit = AuditLog()
    for _ in range(5):
        audit.login_success(7, 'kassa', '10.0.0.1', 'pytest')

    assert len(audit.recent(3)) == 3
    assert audit.recent(0) == []
    event = audit.recent(1)[0]
    assert (event['username'], event['ip'], event['user_agent'], event['uid']) == ('kassa', '10.0.0.1', 'pytest', 7)
