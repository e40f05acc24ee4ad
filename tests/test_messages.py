from models import dm_key


def test_dm_key_is_order_independent():
    assert dm_key('bob', 'alice') == dm_key('alice', 'bob') == 'alice|bob'


def test_room_message_history_in_order(signup):
    alice = signup('alice')
    bob = signup('bob')
    alice.post('/rooms/create', json={'name': 'general'})
    bob.post('/rooms/general/join')

    for i, c in enumerate([alice, bob, alice]):
        resp = c.post('/messages', json={'room': 'general', 'text': f'  msg {i}  '})
        assert resp.status_code == 201

    history = bob.get('/rooms/general/messages').get_json()['messages']
    assert [(m['from'], m['text']) for m in history] == [('alice', 'msg 0'), ('bob', 'msg 1'), ('alice', 'msg 2')]
    assert all(m['room'] == 'general' and len(m['id']) == 32 for m in history)


def test_history_is_capped_to_most_recent(app, signup):
    alice = signup('alice')
    alice.post('/rooms/create', json={'name': 'general'})
    limit = app.config['HISTORY_LIMIT']
    for i in range(limit + 5):
        alice.post('/messages', json={'room': 'general', 'text': str(i)})
    history = alice.get('/rooms/general/messages').get_json()['messages']
    assert len(history) == limit
    assert history[0]['text'] == '5'
    assert history[-1]['text'] == str(limit + 4)


def test_message_validation(signup):
    alice = signup('alice')
    signup('bob')
    alice.post('/rooms/create', json={'name': 'general'})
    assert alice.post('/messages', json={'room': 'general', 'text': '   '}).get_json()['message'] == 'Message is empty'
    assert alice.post('/messages', json={'text': 'hi'}).status_code == 400
    assert alice.post('/messages', json={'room': 'nope', 'text': 'hi'}).status_code == 404
    resp = alice.post('/messages', json={'to': 'bob', 'text': 'hi'})
    assert resp.status_code == 403
    assert resp.get_json()['message'] == 'You can only message friends'


def test_direct_messages(signup, befriend):
    alice = signup('alice')
    bob = signup('bob')
    befriend(alice, bob, 'bob')

    alice.post('/messages', json={'to': 'bob', 'text': 'hey bob'})
    bob.post('/messages', json={'to': 'alice', 'text': 'hey alice'})

    thread = bob.get('/dm/alice').get_json()
    assert thread['withUser'] == 'alice'
    assert [(m['from'], m['to'], m['text']) for m in thread['messages']] == [
        ('alice', 'bob', 'hey bob'),
        ('bob', 'alice', 'hey alice'),
    ]
    assert all(m['pair'] == 'alice|bob' for m in thread['messages'])
    assert alice.get('/dm/bob').get_json()['messages'] == thread['messages']
    assert [c['username'] for c in alice.get('/dms').get_json()['contacts']] == ['bob']


def test_edit_only_by_sender(signup):
    alice = signup('alice')
    bob = signup('bob')
    alice.post('/rooms/create', json={'name': 'general'})
    bob.post('/rooms/general/join')
    msg_id = bob.post('/messages', json={'room': 'general', 'text': 'typo'}).get_json()['message']['id']

    assert alice.patch(f'/messages/{msg_id}', json={'text': 'nope'}).status_code == 403

    resp = bob.patch(f'/messages/{msg_id}', json={'text': 'fixed'})
    assert resp.status_code == 200
    edited = resp.get_json()['message']
    assert edited['text'] == 'fixed'
    assert edited['edited'] is not None
    assert bob.patch('/messages/missing', json={'text': 'x'}).status_code == 404


def test_delete_by_sender_owner_or_admin(signup):
    alice = signup('alice')
    bob = signup('bob')
    carol = signup('carol')
    root = signup('root')
    alice.post('/rooms/create', json={'name': 'general'})
    for c in (bob, carol, root):
        c.post('/rooms/general/join')

    ids = [bob.post('/messages', json={'room': 'general', 'text': str(i)}).get_json()['message']['id']
           for i in range(3)]

    assert carol.delete(f'/messages/{ids[0]}').status_code == 403
    assert bob.delete(f'/messages/{ids[0]}').get_json() == {'success': True, 'id': ids[0]}
    assert alice.delete(f'/messages/{ids[1]}').status_code == 200
    assert root.delete(f'/messages/{ids[2]}').status_code == 200
    assert alice.get('/rooms/general/messages').get_json()['messages'] == []
    assert bob.delete(f'/messages/{ids[0]}').status_code == 404


def test_non_string_fields_are_rejected(signup):
    alice = signup('alice')
    signup('bob')
    alice.post('/rooms/create', json={'name': 'general'})

    resp = alice.post('/messages', json={'room': {'x': 1}, 'text': 'hi'})
    assert resp.status_code == 400
    assert resp.get_json() == {'success': False, 'message': 'Invalid room'}
    assert alice.post('/messages', json={'to': ['bob'], 'text': 'hi'}).get_json()['message'] == 'Invalid recipient'
    assert alice.post('/friend/request', json={'to': ['bob']}).status_code == 400
    assert alice.post('/rooms/general/kick', json={'target': 5}).get_json()['message'] == 'Invalid target'
    assert alice.post('/rooms/create', json={'name': 7}).get_json()['message'] == 'Invalid name'
    assert alice.patch('/messages/x', json=['text']).get_json()['message'] == 'Message not found'
