def test_create_and_list_rooms(signup):
    alice = signup('alice')
    resp = alice.post('/rooms/create', json={'name': 'general'})
    assert resp.status_code == 201
    assert len(resp.get_json()['inviteId']) == 8

    alice.post('/rooms/create', json={'name': 'secret', 'password': 'pw'})
    alice.post('/rooms/create', json={'name': 'hidden', 'inviteOnly': True})

    rooms = {r['name']: r for r in alice.get('/rooms').get_json()['rooms']}
    assert set(rooms) == {'general', 'secret'}
    assert rooms['general'] == {'name': 'general', 'owner': 'alice', 'private': False,
                                'inviteOnly': False, 'members': 1}
    assert rooms['secret']['private'] is True


def test_create_room_conflicts(signup):
    alice = signup('alice')
    alice.post('/rooms/create', json={'name': 'general'})
    assert alice.post('/rooms/create', json={'name': 'general'}).status_code == 409
    assert alice.post('/rooms/create', json={}).get_json()['message'] == 'Missing name'


def test_password_room_join(signup):
    alice = signup('alice')
    bob = signup('bob')
    alice.post('/rooms/create', json={'name': 'secret', 'password': 'pw'})

    resp = bob.post('/rooms/secret/join', json={'password': 'wrong'})
    assert resp.status_code == 403
    assert resp.get_json()['message'] == 'Wrong password'

    resp = bob.post('/rooms/secret/join', json={'password': 'pw'})
    assert resp.get_json() == {'success': True, 'name': 'secret', 'joined': True}
    assert bob.post('/rooms/secret/join', json={}).get_json()['joined'] is False


def test_invite_only_room(signup):
    alice = signup('alice')
    bob = signup('bob')
    invite = alice.post('/rooms/create', json={'name': 'hidden', 'inviteOnly': True,
                                               'password': 'pw'}).get_json()['inviteId']

    assert bob.get('/rooms/hidden').status_code == 404
    assert bob.post('/rooms/hidden/join', json={'password': 'pw'}).status_code == 403

    assert bob.get(f'/rooms/invite/{invite}').get_json()['name'] == 'hidden'
    assert bob.get('/rooms/invite/deadbeef').status_code == 404

    assert bob.post('/rooms/hidden/join', json={'invite': invite}).get_json()['joined'] is True
    details = bob.get('/rooms/hidden').get_json()['room']
    assert details['memberList'] == ['alice', 'bob']
    assert 'inviteId' not in details
    assert alice.get('/rooms/hidden').get_json()['room']['inviteId'] == invite


def test_kick_and_ban(signup):
    alice = signup('alice')
    bob = signup('bob')
    carol = signup('carol')
    alice.post('/rooms/create', json={'name': 'general'})
    bob.post('/rooms/general/join')
    carol.post('/rooms/general/join')

    assert bob.post('/rooms/general/kick', json={'target': 'carol'}).status_code == 403

    assert alice.post('/rooms/general/kick', json={'target': 'carol'}).status_code == 200
    assert carol.post('/messages', json={'room': 'general', 'text': 'hi'}).status_code == 403
    assert carol.post('/rooms/general/join').status_code == 200

    assert alice.post('/rooms/general/ban', json={'target': 'bob'}).status_code == 200
    assert bob.get('/rooms/general/messages').status_code == 403
    resp = bob.post('/rooms/general/join')
    assert resp.status_code == 403
    assert resp.get_json()['message'] == 'You are banned from this room'
    assert alice.get('/rooms/general').get_json()['room']['banned'] == ['bob']

    alice.post('/rooms/general/unban', json={'target': 'bob'})
    assert bob.post('/rooms/general/join').status_code == 200


def test_owner_cannot_be_kicked_or_leave(signup):
    alice = signup('alice')
    alice.post('/rooms/create', json={'name': 'general'})
    assert alice.post('/rooms/general/kick', json={'target': 'alice'}).status_code == 400
    assert alice.post('/rooms/general/leave').status_code == 400


def test_leave_room(signup):
    alice = signup('alice')
    bob = signup('bob')
    alice.post('/rooms/create', json={'name': 'general'})
    bob.post('/rooms/general/join')
    assert bob.post('/rooms/general/leave').status_code == 200
    assert alice.get('/rooms/general').get_json()['room']['memberList'] == ['alice']


def test_delete_room(signup):
    alice = signup('alice')
    bob = signup('bob')
    root = signup('root')
    alice.post('/rooms/create', json={'name': 'general'})
    alice.post('/rooms/create', json={'name': 'other'})
    alice.post('/messages', json={'room': 'general', 'text': 'hello'})

    assert bob.post('/rooms/general/delete').status_code == 403
    assert alice.post('/rooms/general/delete').status_code == 200
    assert alice.get('/rooms/general').status_code == 404

    # admins may delete any room
    assert root.post('/rooms/other/delete').status_code == 200
    assert alice.get('/rooms').get_json()['rooms'] == []

    # the name is free again and carries no old history
    alice.post('/rooms/create', json={'name': 'general'})
    assert alice.get('/rooms/general/messages').get_json()['messages'] == []
