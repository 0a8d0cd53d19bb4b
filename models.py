import uuid
from datetime import datetime

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import validates

# 1. Create the database instance (connected to the app in app.py)
db = SQLAlchemy()


def new_id():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


def _as_int(value, field, nullable=False):
    """Coerce a JSON number to a non-negative int, or raise ValueError."""
    if value is None or value == '':
        if nullable:
            return None
        raise ValueError(f'{field} is required')
    if isinstance(value, bool):
        raise ValueError(f'{field} must be an integer')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f'{field} must be an integer')
    if number != value and not isinstance(value, str):
        raise ValueError(f'{field} must be an integer')
    if number < 0:
        raise ValueError(f'{field} must not be negative')
    return number


def _as_bool(value, field):
    if not isinstance(value, bool):
        raise ValueError(f'{field} must be true or false')
    return value


class WritableMixin:
    # JSON key -> attribute name for fields the API is allowed to write
    WRITABLE = {}
    REQUIRED = ()

    def update_from(self, data):
        for key, attr in self.WRITABLE.items():
            if key not in data:
                continue
            if key in self.REQUIRED and data[key] in (None, ''):
                raise ValueError(f'{key} is required')
            setattr(self, attr, data[key])
        return self

    @classmethod
    def missing_fields(cls, data):
        return [key for key in cls.REQUIRED if data.get(key) in (None, '')]


# --- M V C: The MODELS (Database Tables) ---

# Class 1: User Table
# Mirror of an identity-provider account, keyed by the provider's uid
class User(WritableMixin, db.Model):
    __tablename__ = 'users'
    id = db.Column(db.String(128), primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    display_name = db.Column(db.String(255))
    photo_url = db.Column(db.String(500))
    provider = db.Column(db.String(50), nullable=False, default='email')
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # Relationship: A user has many transactions
    transactions = db.relationship('Transaction', backref='user', lazy=True)

    WRITABLE = {'displayName': 'display_name', 'photoURL': 'photo_url'}

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'displayName': self.display_name,
            'photoURL': self.photo_url,
            'provider': self.provider,
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.email}>'


# Class 2: Game Table
# Catalog entry; stock is decremented once per completed purchase
class Game(WritableMixin, db.Model):
    __tablename__ = 'games'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=False)
    image_url = db.Column(db.String(500), nullable=False)
    category = db.Column(db.String(100), nullable=False)
    publisher = db.Column(db.String(200), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    requires_server = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    packages = db.relationship('GamePackage', backref='game', lazy=True,
                               cascade='all, delete-orphan')
    transactions = db.relationship('Transaction', backref='game', lazy=True)

    WRITABLE = {
        'name': 'name',
        'slug': 'slug',
        'description': 'description',
        'imageUrl': 'image_url',
        'category': 'category',
        'publisher': 'publisher',
        'stock': 'stock',
        'isActive': 'is_active',
        'requiresServer': 'requires_server',
    }
    REQUIRED = ('name', 'slug', 'description', 'imageUrl', 'category', 'publisher')

    @validates('stock')
    def validate_stock(self, key, value):
        return _as_int(value, 'stock')

    @validates('is_active', 'requires_server')
    def validate_flags(self, key, value):
        return _as_bool(value, 'isActive' if key == 'is_active' else 'requiresServer')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'imageUrl': self.image_url,
            'category': self.category,
            'publisher': self.publisher,
            'stock': self.stock,
            'isActive': self.is_active,
            'requiresServer': self.requires_server,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Game {self.slug}>'


# Class 3: GamePackage Table
# A purchasable denomination of one game (e.g. "100 Diamonds")
class GamePackage(WritableMixin, db.Model):
    __tablename__ = 'game_packages'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    game_id = db.Column(db.String(36), db.ForeignKey('games.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    amount = db.Column(db.String(200), nullable=False)
    price = db.Column(db.Integer, nullable=False)
    discount_price = db.Column(db.Integer)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    transactions = db.relationship('Transaction', backref='package', lazy=True)

    WRITABLE = {
        'gameId': 'game_id',
        'name': 'name',
        'amount': 'amount',
        'price': 'price',
        'discountPrice': 'discount_price',
        'isActive': 'is_active',
    }
    REQUIRED = ('gameId', 'name', 'amount', 'price')

    @validates('price')
    def validate_price(self, key, value):
        return _as_int(value, 'price')

    @validates('discount_price')
    def validate_discount_price(self, key, value):
        return _as_int(value, 'discountPrice', nullable=True)

    @validates('is_active')
    def validate_is_active(self, key, value):
        return _as_bool(value, 'isActive')

    @property
    def effective_price(self):
        """Price actually charged: the discount price when set, else the list price."""
        # 0 counts as no discount
        return self.discount_price or self.price

    def to_dict(self):
        return {
            'id': self.id,
            'gameId': self.game_id,
            'name': self.name,
            'amount': self.amount,
            'price': self.price,
            'discountPrice': self.discount_price,
            'isActive': self.is_active,
            'createdAt': _iso(self.created_at),
        }


# Class 4: Transaction Table
# One purchase attempt: pending -> completed | failed
class Transaction(db.Model):
    __tablename__ = 'transactions'

    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(128), db.ForeignKey('users.id'), nullable=False)
    game_id = db.Column(db.String(36), db.ForeignKey('games.id'), nullable=False)
    package_id = db.Column(db.String(36), db.ForeignKey('game_packages.id'), nullable=False)
    user_game_id = db.Column(db.String(200), nullable=False)
    user_game_server = db.Column(db.String(200))
    amount = db.Column(db.Integer, nullable=False)  # server-side price, never client input
    status = db.Column(db.String(20), nullable=False, default=PENDING)
    payment_method = db.Column(db.String(50))
    stripe_payment_intent_id = db.Column(db.String(255), unique=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'gameId': self.game_id,
            'gameName': self.game.name if self.game else None,
            'packageId': self.package_id,
            'packageName': self.package.name if self.package else None,
            'userGameId': self.user_game_id,
            'userGameServer': self.user_game_server,
            'amount': self.amount,
            'status': self.status,
            'paymentMethod': self.payment_method,
            'stripePaymentIntentId': self.stripe_payment_intent_id,
            'createdAt': _iso(self.created_at),
            'completedAt': _iso(self.completed_at),
        }


# Class 5: Banner Table
# Carousel slides on the home page
class Banner(WritableMixin, db.Model):
    __tablename__ = 'banners'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    image_url = db.Column(db.String(500), nullable=False)
    link_url = db.Column(db.String(500))
    order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    WRITABLE = {
        'title': 'title',
        'imageUrl': 'image_url',
        'linkUrl': 'link_url',
        'order': 'order',
        'isActive': 'is_active',
    }
    REQUIRED = ('title', 'imageUrl')

    @validates('order')
    def validate_order(self, key, value):
        return _as_int(value, 'order')

    @validates('is_active')
    def validate_is_active(self, key, value):
        return _as_bool(value, 'isActive')

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'imageUrl': self.image_url,
            'linkUrl': self.link_url,
            'order': self.order,
            'isActive': self.is_active,
            'createdAt': _iso(self.created_at),
        }


# Class 6: SiteConfig Table
# Singleton row; the first row is the config
class SiteConfig(WritableMixin, db.Model):
    __tablename__ = 'site_config'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    site_name = db.Column(db.String(200), nullable=False, default='GameTopUp')
    site_icon = db.Column(db.String(500), nullable=False, default='/favicon.png')
    site_description = db.Column(db.Text, nullable=False, default='')
    contact_email = db.Column(db.String(255))
    contact_phone = db.Column(db.String(50))
    social_media = db.Column(db.JSON)  # {facebook, twitter, instagram, whatsapp}
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    WRITABLE = {
        'siteName': 'site_name',
        'siteIcon': 'site_icon',
        'siteDescription': 'site_description',
        'contactEmail': 'contact_email',
        'contactPhone': 'contact_phone',
        'socialMedia': 'social_media',
    }

    @classmethod
    def current(cls):
        return cls.query.first()

    def to_dict(self):
        return {
            'id': self.id,
            'siteName': self.site_name,
            'siteIcon': self.site_icon,
            'siteDescription': self.site_description,
            'contactEmail': self.contact_email,
            'contactPhone': self.contact_phone,
            'socialMedia': self.social_media or {},
            'updatedAt': _iso(self.updated_at),
        }


# Class 7: AdminUser Table
# Back-office credentials, separate from storefront users
class AdminUser(UserMixin, db.Model):
    __tablename__ = 'admin_users'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)  # werkzeug hash, never plain text
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'isActive': self.is_active,
            'lastLoginAt': _iso(self.last_login_at),
        }

    def __repr__(self):
        return f'<AdminUser {self.email}>'
