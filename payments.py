# Checkout flow: Stripe payment-intents and the pending -> completed | failed transaction
from datetime import datetime

import stripe
from flask import current_app
from werkzeug.exceptions import BadRequest, Conflict, NotFound

from models import db, User, Game, GamePackage, Transaction

# Stripe amounts are in the currency's smallest unit
MINOR_UNITS = 100


def to_minor_units(amount):
    return int(round(amount * MINOR_UNITS))


def create_payment_intent(user_id, game_id, package_id, user_game_id, server=None):
    """Create a Stripe PaymentIntent plus its pending Transaction."""
    if not all([user_id, game_id, package_id, user_game_id]):
        raise BadRequest('Missing required fields')

    # 1. Verify user, game and package exist
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound('User not found')

    game = db.session.get(Game, game_id)
    package = db.session.get(GamePackage, package_id)
    if game is None or package is None:
        raise NotFound('Game or package not found')

    if package.game_id != game.id:
        raise BadRequest('Package does not belong to this game')
    if not game.is_active or not package.is_active:
        raise Conflict('Game or package is not available')
    if game.requires_server and not server:
        raise BadRequest('Server ID is required for this game')

    # 2. Check stock before anything is charged or stored
    if game.stock <= 0:
        current_app.logger.warning(f'Checkout rejected: {game.slug} is out of stock')
        raise Conflict('Out of stock')

    # 3. Amount from the database (prevents tampering)
    amount = package.effective_price

    try:
        intent = stripe.PaymentIntent.create(
            amount=to_minor_units(amount),
            currency=current_app.config['STRIPE_CURRENCY'],
            metadata={
                'gameId': game.id,
                'packageId': package.id,
                'userId': user.id,
                'userGameId': user_game_id,
                'server': server or '',
            },
        )
    except stripe.StripeError as e:
        current_app.logger.error(f'Stripe error creating payment intent: {e}')
        raise Conflict(f'Error creating payment intent: {e}')

    # 4. Record the pending transaction
    transaction = Transaction(
        user_id=user.id,
        game_id=game.id,
        package_id=package.id,
        user_game_id=user_game_id,
        user_game_server=server or '',
        amount=amount,
        status=Transaction.PENDING,
        payment_method='stripe',
        stripe_payment_intent_id=intent['id'],
    )
    db.session.add(transaction)
    db.session.commit()

    current_app.logger.info(
        f'Payment intent {intent["id"]} created: user {user.id} buying {package.name} '
        f'for {game.slug} ({amount})'
    )
    return intent, transaction


def confirm_payment(payment_intent_id):
    if not payment_intent_id:
        raise BadRequest('Missing payment intent ID')

    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.StripeError as e:
        current_app.logger.error(f'Stripe error retrieving {payment_intent_id}: {e}')
        raise Conflict(f'Error retrieving payment intent: {e}')

    if intent['status'] != 'succeeded':
        current_app.logger.warning(
            f'Confirmation for {payment_intent_id} ignored: status is {intent["status"]}'
        )
        raise Conflict('Payment not successful')

    return complete_transaction(payment_intent_id)


def _find_transaction(payment_intent_id):
    transaction = Transaction.query.filter_by(stripe_payment_intent_id=payment_intent_id).first()
    if transaction is None:
        raise NotFound('Transaction not found')
    return transaction


def _transition(transaction, status, **values):
    # Compare-and-set on the status column; 0 rows means someone got there first
    changed = (
        Transaction.query
        .filter_by(id=transaction.id, status=Transaction.PENDING)
        .update({'status': status, **values}, synchronize_session=False)
    )
    return changed == 1


def complete_transaction(payment_intent_id):
    """Move a pending transaction to completed and decrement stock, once."""
    transaction = _find_transaction(payment_intent_id)

    if not _transition(transaction, Transaction.COMPLETED, completed_at=datetime.utcnow()):
        db.session.rollback()
        current_app.logger.warning(
            f'Payment {payment_intent_id} already processed (status {transaction.status})'
        )
        raise Conflict('Payment already processed')

    # Stock is not re-checked here, only floored at zero
    Game.query.filter(Game.id == transaction.game_id, Game.stock > 0).update(
        {Game.stock: Game.stock - 1}, synchronize_session=False
    )
    db.session.commit()
    db.session.refresh(transaction)

    current_app.logger.info(f'Transaction {transaction.id} completed for payment {payment_intent_id}')
    return transaction


def fail_transaction(payment_intent_id):
    transaction = _find_transaction(payment_intent_id)

    if not _transition(transaction, Transaction.FAILED):
        db.session.rollback()
        raise Conflict('Payment already processed')

    db.session.commit()
    db.session.refresh(transaction)
    current_app.logger.warning(f'Transaction {transaction.id} failed for payment {payment_intent_id}')
    return transaction
