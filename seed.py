import os

from werkzeug.security import generate_password_hash

from models import db, AdminUser, Game, GamePackage, Banner, SiteConfig

# --- SEED DATA ---
SAMPLE_GAMES = [
    {
        'name': 'Mobile Legends: Bang Bang',
        'slug': 'mobile-legends',
        'description': '5v5 MOBA game paling populer di Indonesia dengan gameplay seru dan kompetitif',
        'image_url': 'https://images.unsplash.com/photo-1542751371-adc38448a05e?w=400&h=400&fit=crop',
        'category': 'MOBA',
        'publisher': 'Moonton',
        'stock': 500,
        'requires_server': True,
    },
    {
        'name': 'Free Fire',
        'slug': 'free-fire',
        'description': 'Battle Royale game terbaik dengan 50 pemain bertarung di pulau terpencil',
        'image_url': 'https://images.unsplash.com/photo-1538481199705-c710c4e965fc?w=400&h=400&fit=crop',
        'category': 'Battle Royale',
        'publisher': 'Garena',
        'stock': 750,
    },
    {
        'name': 'PUBG Mobile',
        'slug': 'pubg-mobile',
        'description': 'Game Battle Royale realistis dengan grafis memukau dan gameplay intens',
        'image_url': 'https://images.unsplash.com/photo-1552820728-8b83bb6b773f?w=400&h=400&fit=crop',
        'category': 'Battle Royale',
        'publisher': 'Tencent',
        'stock': 600,
    },
    {
        'name': 'Genshin Impact',
        'slug': 'genshin-impact',
        'description': 'Action RPG open world dengan dunia fantasi yang luas dan karakter menarik',
        'image_url': 'https://images.unsplash.com/photo-1511512578047-dfb367046420?w=400&h=400&fit=crop',
        'category': 'RPG',
        'publisher': 'miHoYo',
        'stock': 400,
        'requires_server': True,
    },
]

# (label, price, discount price)
SAMPLE_PACKAGES = [
    ('50 Diamonds', 15000, None),
    ('100 Diamonds', 28000, 25000),
    ('250 Diamonds', 70000, 65000),
    ('500 Diamonds', 140000, 125000),
    ('1000 Diamonds', 280000, 245000),
]

SAMPLE_BANNERS = [
    {
        'title': 'Promo Spesial Hari Ini!',
        'image_url': 'https://images.unsplash.com/photo-1607799279861-4dd421887fb3?w=1920&h=600&fit=crop',
        'order': 0,
    },
    {
        'title': 'Top Up Hemat Setiap Hari',
        'image_url': 'https://images.unsplash.com/photo-1511882150382-421056c89033?w=1920&h=600&fit=crop',
        'order': 1,
    },
]


def seed_database():
    """Insert the default admin and sample catalog. Safe to run twice."""
    # 1. Admin account (SECURED: only the hash is stored)
    admin_email = os.environ.get('ADMIN_EMAIL', 'admin@gametopup.com')
    if not AdminUser.query.filter_by(email=admin_email).first():
        password = os.environ.get('ADMIN_PASSWORD', 'admin123')
        db.session.add(AdminUser(
            email=admin_email,
            password=generate_password_hash(password, method='pbkdf2:sha256'),
        ))

    # 2. Games, each with the standard package ladder
    for fields in SAMPLE_GAMES:
        if Game.query.filter_by(slug=fields['slug']).first():
            continue
        game = Game(**fields)
        for label, price, discount in SAMPLE_PACKAGES:
            game.packages.append(GamePackage(name=label, amount=label, price=price, discount_price=discount))
        db.session.add(game)

    # 3. Banners
    if Banner.query.count() == 0:
        for fields in SAMPLE_BANNERS:
            db.session.add(Banner(link_url='', **fields))

    # 4. Site config singleton
    if SiteConfig.current() is None:
        db.session.add(SiteConfig(
            site_name='GameTopUp',
            site_icon='/favicon.png',
            site_description=(
                'Platform top up game terpercaya dengan harga termurah dan proses tercepat. '
                'Top up Mobile Legends, Free Fire, PUBG Mobile, Genshin Impact, dan game lainnya '
                'dengan mudah dan aman.'
            ),
            contact_email='support@gametopup.com',
            contact_phone='+62 812-3456-7890',
        ))

    db.session.commit()
