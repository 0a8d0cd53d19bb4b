from models import db, Banner, Game, GamePackage, SiteConfig, Transaction


GAME_BODY = {
    'name': 'Genshin Impact',
    'slug': 'genshin-impact',
    'description': 'Open world RPG',
    'imageUrl': 'https://img.example.com/genshin.png',
    'category': 'RPG',
    'publisher': 'miHoYo',
    'stock': 10,
    'requiresServer': True,
}


# --- Public catalog ---

def test_public_games_hide_inactive(client, game):
    hidden = Game(name='Old', slug='old', description='d', image_url='i', category='c', publisher='p', is_active=False)
    db.session.add(hidden)
    db.session.commit()

    games = client.get('/api/games').get_json()
    assert [g['slug'] for g in games] == ['free-fire']
    assert client.get('/api/games/old').status_code == 404


def test_game_by_slug_and_id(client, game):
    response = client.get('/api/games/free-fire')
    assert response.status_code == 200
    assert response.get_json()['id'] == game.id
    assert response.get_json()['imageUrl'] == 'https://img.example.com/ff.png'

    assert client.get(f'/api/games/by-id/{game.id}').get_json()['slug'] == 'free-fire'
    assert client.get('/api/games/by-id/nope').status_code == 404


def test_unknown_game_slug(client):
    response = client.get('/api/games/does-not-exist')
    assert response.status_code == 404
    assert response.get_json() == {'message': 'Game not found'}


def test_lookups_by_id_hide_inactive(client, game, package):
    game.is_active = False
    package.is_active = False
    db.session.commit()

    assert client.get(f'/api/games/by-id/{game.id}').status_code == 404
    response = client.get(f'/api/packages/{package.id}')
    assert response.status_code == 404
    assert response.get_json() == {'message': 'Package not found'}


def test_game_packages_cheapest_first(client, game, package):
    db.session.add(GamePackage(game_id=game.id, name='50 Diamonds', amount='50 Diamonds', price=5000))
    db.session.add(GamePackage(game_id=game.id, name='Hidden', amount='x', price=1, is_active=False))
    db.session.commit()

    packages = client.get('/api/games/free-fire/packages').get_json()
    assert [p['name'] for p in packages] == ['50 Diamonds', '100 Diamonds']
    assert client.get('/api/games/nope/packages').status_code == 404


def test_package_lookup(client, package):
    response = client.get(f'/api/packages/{package.id}')
    assert response.status_code == 200
    assert response.get_json()['price'] == 10000
    assert response.get_json()['discountPrice'] is None


def test_missing_package_is_not_found(client):
    response = client.get('/api/packages/00000000-0000-0000-0000-000000000000')
    assert response.status_code == 404
    assert response.get_json() == {'message': 'Package not found'}


def test_banners_ordered_and_active(client, app):
    db.session.add_all([
        Banner(title='Second', image_url='b.png', order=2),
        Banner(title='First', image_url='a.png', order=1),
        Banner(title='Off', image_url='c.png', order=0, is_active=False),
    ])
    db.session.commit()

    banners = client.get('/api/banners').get_json()
    assert [b['title'] for b in banners] == ['First', 'Second']


def test_site_config_empty_then_set(client, app):
    assert client.get('/api/site-config').get_json() == {}

    db.session.add(SiteConfig(site_description='Top up fast', contact_email='hi@example.com'))
    db.session.commit()

    config = client.get('/api/site-config').get_json()
    assert config['siteName'] == 'GameTopUp'
    assert config['siteIcon'] == '/favicon.png'
    assert config['contactEmail'] == 'hi@example.com'
    assert config['socialMedia'] == {}


# --- Admin games ---

def test_admin_creates_and_updates_game(admin_client):
    response = admin_client.post('/api/admin/games', json=GAME_BODY)
    assert response.status_code == 201
    created = response.get_json()
    assert created['stock'] == 10
    assert created['requiresServer'] is True
    assert created['isActive'] is True

    response = admin_client.put(f'/api/admin/games/{created["id"]}', json={'stock': 3, 'isActive': False})
    assert response.status_code == 200
    assert response.get_json()['stock'] == 3
    assert db.session.get(Game, created['id']).is_active is False

    # inactive games still show up in the back-office list
    assert len(admin_client.get('/api/admin/games').get_json()) == 1


def test_admin_game_validation(admin_client, game):
    response = admin_client.post('/api/admin/games', json={'name': 'No slug'})
    assert response.status_code == 400
    assert 'slug' in response.get_json()['message']

    response = admin_client.post('/api/admin/games', json={**GAME_BODY, 'slug': 'free-fire'})
    assert response.status_code == 409

    response = admin_client.put(f'/api/admin/games/{game.id}', json={'stock': -1})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'stock must not be negative'

    assert admin_client.put('/api/admin/games/missing', json={'stock': 1}).status_code == 404


def test_admin_update_cannot_blank_required_field(admin_client, game):
    response = admin_client.put(f'/api/admin/games/{game.id}', json={'name': None})
    assert response.status_code == 400
    assert response.get_json() == {'message': 'name is required'}

    response = admin_client.put(f'/api/admin/games/{game.id}', json={'imageUrl': ''})
    assert response.status_code == 400
    assert db.session.get(Game, game.id).name == 'Free Fire'


def test_admin_flags_must_be_booleans(admin_client, game, package):
    response = admin_client.put(f'/api/admin/games/{game.id}', json={'isActive': 'yes'})
    assert response.status_code == 400
    assert response.get_json() == {'message': 'isActive must be true or false'}

    response = admin_client.put(f'/api/admin/games/{game.id}', json={'requiresServer': 1})
    assert response.status_code == 400

    response = admin_client.put(f'/api/admin/packages/{package.id}', json={'isActive': None})
    assert response.status_code == 400

    response = admin_client.post('/api/admin/banners', json={'title': 'T', 'imageUrl': 'i', 'isActive': 'no'})
    assert response.status_code == 400
    assert Banner.query.count() == 0
    assert db.session.get(Game, game.id).is_active is True


def test_admin_deletes_game_with_packages(admin_client, game, package):
    response = admin_client.delete(f'/api/admin/games/{game.id}')
    assert response.status_code == 200
    assert response.get_json() == {'success': True}
    assert Game.query.count() == 0
    assert GamePackage.query.count() == 0

    assert admin_client.delete(f'/api/admin/games/{game.id}').status_code == 404


def test_admin_cannot_delete_game_with_history(admin_client, user, game, package):
    db.session.add(Transaction(user_id=user.id, game_id=game.id, package_id=package.id,
                               user_game_id='1', amount=10000, stripe_payment_intent_id='pi_x'))
    db.session.commit()

    assert admin_client.delete(f'/api/admin/games/{game.id}').status_code == 409
    assert admin_client.delete(f'/api/admin/packages/{package.id}').status_code == 409

    transactions = admin_client.get('/api/admin/transactions').get_json()
    assert transactions[0]['stripePaymentIntentId'] == 'pi_x'


# --- Admin packages ---

def test_admin_package_crud(admin_client, game):
    body = {'gameId': game.id, 'name': '500 Diamonds', 'amount': '500 Diamonds', 'price': 140000, 'discountPrice': 125000}
    response = admin_client.post('/api/admin/packages', json=body)
    assert response.status_code == 201
    pkg = response.get_json()
    assert pkg['discountPrice'] == 125000

    response = admin_client.put(f'/api/admin/packages/{pkg["id"]}', json={'discountPrice': None})
    assert response.get_json()['discountPrice'] is None

    listed = admin_client.get(f'/api/admin/games/{game.id}/packages').get_json()
    assert [p['id'] for p in listed] == [pkg['id']]

    assert admin_client.delete(f'/api/admin/packages/{pkg["id"]}').status_code == 200
    assert admin_client.get(f'/api/packages/{pkg["id"]}').status_code == 404


def test_admin_package_needs_existing_game(admin_client):
    body = {'gameId': 'missing', 'name': 'x', 'amount': 'x', 'price': 1}
    response = admin_client.post('/api/admin/packages', json=body)
    assert response.status_code == 404
    assert response.get_json()['message'] == 'Game not found'


def test_admin_package_price_must_be_integer(admin_client, game):
    body = {'gameId': game.id, 'name': 'x', 'amount': 'x', 'price': 'cheap'}
    response = admin_client.post('/api/admin/packages', json=body)
    assert response.status_code == 400
    assert response.get_json()['message'] == 'price must be an integer'
    assert GamePackage.query.count() == 0


# --- Admin banners & site config ---

def test_admin_banner_crud(admin_client):
    response = admin_client.post('/api/admin/banners', json={'title': 'Promo', 'imageUrl': 'p.png', 'order': 1})
    assert response.status_code == 201
    banner_id = response.get_json()['id']

    response = admin_client.put(f'/api/admin/banners/{banner_id}', json={'linkUrl': '/games/free-fire'})
    assert response.get_json()['linkUrl'] == '/games/free-fire'
    assert len(admin_client.get('/api/admin/banners').get_json()) == 1

    assert admin_client.post('/api/admin/banners', json={'title': 'No image'}).status_code == 400
    assert admin_client.delete(f'/api/admin/banners/{banner_id}').status_code == 200
    assert admin_client.put(f'/api/admin/banners/{banner_id}', json={}).status_code == 404


def test_admin_site_config_is_a_singleton(admin_client):
    assert admin_client.get('/api/admin/site-config').get_json() == {}

    first = admin_client.put('/api/admin/site-config', json={'siteName': 'TopUpKu', 'siteDescription': 'Murah'})
    second = admin_client.put('/api/admin/site-config', json={'socialMedia': {'instagram': '@topupku'}})

    assert first.get_json()['id'] == second.get_json()['id']
    assert SiteConfig.query.count() == 1
    config = admin_client.get('/api/site-config').get_json()
    assert config['siteName'] == 'TopUpKu'
    assert config['socialMedia'] == {'instagram': '@topupku'}
