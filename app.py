from flask import Flask, request, jsonify, send_file, send_from_directory
from flask_cors import CORS
from flask_jwt_extended import JWTManager, jwt_required, create_access_token, get_jwt_identity
from werkzeug.utils import secure_filename
from datetime import datetime, timedelta
from decimal import Decimal
import logging
import os
import secrets

from config import Config
from models import db, User, Debtor, Debt, Payment, Collateral, Notification, valued_debts
from notification_service import NotificationService
from report_generator import report_generator, XLSX_MIMETYPE
from repository import CollectionsRepository
from valuation import (
    DEBT_STATUSES, PAID, OVERDUE, PENDING, InvalidInput,
    days_overdue, days_until_due, derive_status, is_settled, owed_amount,
    parse_due_date, to_money,
)
from whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)

ALLOWED_COLLATERAL_TYPES = {
    'image/jpeg',
    'image/jpg',
    'image/png',
    'image/gif',
    'image/webp',
    'application/pdf',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}

app = Flask(__name__)
app.config.from_object(Config)

db.init_app(app)
jwt = JWTManager(app)
CORS(app)

repository = CollectionsRepository(db.session)
app.extensions['notification_service'] = NotificationService.from_config(
    app.config, repository, WhatsAppService.from_config(app.config)
)


def notification_service():
    return app.extensions['notification_service']


def create_response(success=True, data=None, error=None):
    response = {'success': success, 'metadata': {'timestamp': datetime.utcnow().isoformat()}}
    if data is not None: response['data'] = data
    if error is not None: response['error'] = error
    return jsonify(response)


def error_response(message, status=400):
    return create_response(success=False, error={'message': message}), status


def request_data():
    return request.get_json(silent=True) or {}


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return float(value) if value is not None else None


def _optional_date(value, field):
    if not value:
        return None
    try:
        return parse_due_date(value)
    except InvalidInput:
        raise InvalidInput(f'Invalid {field}')


# Serializers
def serialize_user(user):
    return {
        'id': user.id, 'name': user.name, 'email': user.email,
        'phone': user.phone, 'createdAt': _iso(user.created_at)
    }


def serialize_debtor(debtor):
    return {
        'id': debtor.id, 'name': debtor.name, 'phone': debtor.phone,
        'otherPhones': debtor.other_phones, 'location': debtor.location,
        'description': debtor.description, 'active': debtor.active,
        'createdAt': _iso(debtor.created_at), 'updatedAt': _iso(debtor.updated_at)
    }


def serialize_payment(payment):
    return {
        'id': payment.id, 'debtId': payment.debt_id, 'amount': _money(payment.amount),
        'paymentDate': _iso(payment.payment_date), 'description': payment.description,
        'createdAt': _iso(payment.created_at)
    }


def serialize_collateral(collateral):
    return {
        'id': collateral.id, 'debtId': collateral.debt_id,
        'originalFilename': collateral.original_filename,
        'storedFilename': collateral.stored_filename,
        'mimeType': collateral.mime_type, 'size': collateral.size,
        'description': collateral.description, 'createdAt': _iso(collateral.created_at)
    }


def serialize_debt(debt, now, details=False):
    valuation = debt.valuation(now)
    data = {
        'id': debt.id, 'debtorId': debt.debtor_id,
        'debtor': serialize_debtor(debt.debtor) if debt.debtor else None,
        'principal': _money(debt.principal), 'interestRate': _money(debt.interest_rate),
        'loanDate': _iso(debt.loan_date), 'dueDate': _iso(debt.due_date),
        'owedAmount': _money(valuation.owed_amount),
        'currentAmount': _money(0 if valuation.status == PAID else valuation.owed_amount),
        'totalPaid': _money(debt.total_paid),
        'remainingAmount': _money(valuation.remaining_amount),
        'status': valuation.status,
        'autoNotify': debt.auto_notify, 'notifyPeriodicity': debt.notify_periodicity,
        'lastNotification': _iso(debt.last_notification),
        'createdAt': _iso(debt.created_at), 'updatedAt': _iso(debt.updated_at)
    }
    if details:
        data['payments'] = [serialize_payment(p) for p in debt.active_payments]
        data['collaterals'] = [serialize_collateral(c) for c in debt.active_collaterals]
    return data


def serialize_notification(notification):
    return {
        'id': notification.id, 'debtorId': notification.debtor_id, 'debtId': notification.debt_id,
        'debtorName': notification.debtor.name if notification.debtor else None,
        'phone': notification.phone, 'message': notification.message,
        'status': notification.status, 'errorMessage': notification.error_message,
        'attempts': notification.attempts, 'sentAt': _iso(notification.sent_at),
        'createdAt': _iso(notification.created_at)
    }


# Ownership lookups
def owned_debtor(debtor_id, active_only=True):
    query = Debtor.query.filter_by(id=debtor_id, user_id=get_jwt_identity())
    if active_only:
        query = query.filter_by(active=True)
    return query.first()


def owned_debt(debt_id):
    return Debt.query.filter_by(id=debt_id, user_id=get_jwt_identity(), active=True).first()


def owned_payment(payment_id):
    return (Payment.query.join(Debt)
            .filter(Payment.id == payment_id, Payment.active.is_(True), Debt.user_id == get_jwt_identity())
            .first())


def owned_collateral(collateral_id):
    return (Collateral.query.join(Debt)
            .filter(Collateral.id == collateral_id, Collateral.active.is_(True), Debt.user_id == get_jwt_identity())
            .first())


# Validation
def parse_debtor_payload(data):
    name = (data.get('name') or '').strip()
    phone = (data.get('phone') or '').strip()
    if len(name) < 3:
        raise InvalidInput('Name must have at least 3 characters')
    if len(phone) < 9:
        raise InvalidInput('Phone must have at least 9 characters')
    return {
        'name': name,
        'phone': phone,
        'other_phones': data.get('otherPhones'),
        'location': data.get('location'),
        'description': data.get('description'),
    }


def parse_debt_payload(data):
    principal = to_money(data.get('principal'), 'principal')
    rate = to_money(data.get('interestRate', 0), 'interest rate')
    owed = owed_amount(principal, rate)
    due_date = parse_due_date(data.get('dueDate'))

    auto_notify = bool(data.get('autoNotify', False))
    periodicity = data.get('notifyPeriodicity')
    if periodicity is not None:
        if isinstance(periodicity, bool) or not isinstance(periodicity, int) or periodicity <= 0:
            raise InvalidInput('Notification periodicity must be a positive number of days')
    if auto_notify and periodicity is None:
        raise InvalidInput('Notification periodicity is required for automatic notifications')

    return {
        'principal': principal,
        'interest_rate': rate,
        'due_date': due_date,
        'auto_notify': auto_notify,
        'notify_periodicity': periodicity,
    }, owed


# Health
@app.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'message': 'Debt Tracker API'})


@app.errorhandler(413)
def file_too_large(e):
    return error_response('File exceeds the 10MB upload limit', 413)


@jwt.unauthorized_loader
@jwt.invalid_token_loader
def unauthorized(reason):
    return error_response(reason, 401)


@jwt.expired_token_loader
def token_expired(jwt_header, jwt_payload):
    return error_response('Token has expired', 401)


# Authentication
@app.route('/api/auth/register', methods=['POST'])
def register():
    data = request_data()
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if len(name) < 3:
        return error_response('Name must have at least 3 characters')
    if '@' not in email:
        return error_response('Invalid email')
    if len(password) < 6:
        return error_response('Password must have at least 6 characters')
    if User.query.filter_by(email=email).first():
        return error_response('Email already registered')

    try:
        user = User(name=name, email=email, phone=data.get('phone'))
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error registering user")
        return error_response(f'Error creating user: {str(e)}', 500)

    token = create_access_token(identity=user.id)
    return create_response(data={'user': serialize_user(user), 'token': token}), 201


@app.route('/api/auth/login', methods=['POST'])
def login():
    data = request_data()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')

    if not email or not password:
        return error_response('Email and password are required')

    user = User.query.filter_by(email=email).first()
    if user and user.check_password(password):
        token = create_access_token(identity=user.id)
        return create_response(data={'user': serialize_user(user), 'token': token})

    return error_response('Invalid email or password', 401)


@app.route('/api/auth/me', methods=['GET'])
@jwt_required()
def me():
    user = db.session.get(User, get_jwt_identity())
    if not user:
        return error_response('User not found', 404)
    return create_response(data=serialize_user(user))


@app.route('/api/auth/logout', methods=['POST'])
def logout():
    return create_response(data={'message': 'Logged out successfully'})


# Debtors
@app.route('/api/debtors', methods=['POST'])
@jwt_required()
def create_debtor():
    try:
        fields = parse_debtor_payload(request_data())
    except InvalidInput as e:
        return error_response(str(e))

    try:
        debtor = Debtor(user_id=get_jwt_identity(), **fields)
        db.session.add(debtor)
        db.session.commit()
        return create_response(data=serialize_debtor(debtor)), 201
    except Exception as e:
        db.session.rollback()
        logger.exception("Error creating debtor")
        return error_response(f'Error creating debtor: {str(e)}', 500)


@app.route('/api/debtors', methods=['GET'])
@jwt_required()
def get_debtors():
    debtors = (Debtor.query.filter_by(user_id=get_jwt_identity(), active=True)
               .order_by(Debtor.created_at.desc()).all())
    return create_response(data=[serialize_debtor(d) for d in debtors])


@app.route('/api/debtors/<debtor_id>', methods=['GET'])
@jwt_required()
def get_debtor(debtor_id):
    debtor = owned_debtor(debtor_id, active_only=False)
    if not debtor:
        return error_response('Debtor not found', 404)
    return create_response(data=serialize_debtor(debtor))


@app.route('/api/debtors/<debtor_id>', methods=['PUT'])
@jwt_required()
def update_debtor(debtor_id):
    debtor = owned_debtor(debtor_id, active_only=False)
    if not debtor:
        return error_response('Debtor not found', 404)

    try:
        fields = parse_debtor_payload(request_data())
    except InvalidInput as e:
        return error_response(str(e))

    for key, value in fields.items():
        setattr(debtor, key, value)
    db.session.commit()
    return create_response(data=serialize_debtor(debtor))


@app.route('/api/debtors/<debtor_id>', methods=['DELETE'])
@jwt_required()
def delete_debtor(debtor_id):
    debtor = owned_debtor(debtor_id)
    if not debtor:
        return error_response('Debtor not found', 404)

    debtor.active = False
    db.session.commit()
    return create_response(data={'message': 'Debtor removed successfully'})


# Debts
@app.route('/api/debts', methods=['POST'])
@jwt_required()
def create_debt():
    data = request_data()
    try:
        fields, owed = parse_debt_payload(data)
    except InvalidInput as e:
        return error_response(str(e))

    debtor = owned_debtor(data.get('debtorId'))
    if not debtor:
        return error_response('Debtor not found', 404)

    now = datetime.utcnow()
    try:
        debt = Debt(
            user_id=get_jwt_identity(),
            debtor_id=debtor.id,
            loan_date=_optional_date(data.get('loanDate'), 'loan date') or now,
            current_amount=owed,
            status=derive_status(fields['due_date'], now),
            **fields
        )
        db.session.add(debt)
        db.session.commit()
    except InvalidInput as e:
        db.session.rollback()
        return error_response(str(e))
    except Exception as e:
        db.session.rollback()
        logger.exception("Error creating debt")
        return error_response(f'Error creating debt: {str(e)}', 500)

    return create_response(data=serialize_debt(debt, now)), 201


@app.route('/api/debts', methods=['GET'])
@jwt_required()
def get_debts():
    status = request.args.get('status')
    debtor_id = request.args.get('debtorId')
    if status and status not in DEBT_STATUSES:
        return error_response(f'Invalid status: {status}')

    query = Debt.query.filter_by(user_id=get_jwt_identity(), active=True)
    if debtor_id:
        query = query.filter_by(debtor_id=debtor_id)

    now = datetime.utcnow()
    debts = []
    for debt in query.order_by(Debt.due_date.asc()).all():
        try:
            item = serialize_debt(debt, now)
        except InvalidInput as e:
            logger.warning("Skipping debt %s with invalid data: %s", debt.id, e)
            continue
        if status and item['status'] != status:
            continue
        debts.append(item)
    return create_response(data=debts)


@app.route('/api/debts/<debt_id>', methods=['GET'])
@jwt_required()
def get_debt(debt_id):
    debt = owned_debt(debt_id)
    if not debt:
        return error_response('Debt not found', 404)
    try:
        return create_response(data=serialize_debt(debt, datetime.utcnow(), details=True))
    except InvalidInput as e:
        return error_response(str(e))


@app.route('/api/debts/<debt_id>', methods=['PUT'])
@jwt_required()
def update_debt(debt_id):
    debt = owned_debt(debt_id)
    if not debt:
        return error_response('Debt not found', 404)

    data = request_data()
    try:
        fields, owed = parse_debt_payload(data)
    except InvalidInput as e:
        return error_response(str(e))

    debtor = owned_debtor(data.get('debtorId'))
    if not debtor:
        return error_response('Debtor not found', 404)

    now = datetime.utcnow()
    for key, value in fields.items():
        setattr(debt, key, value)
    debt.debtor_id = debtor.id
    if debt.status != PAID:
        debt.current_amount = owed
        debt.status = derive_status(debt.due_date, now)
    db.session.commit()
    return create_response(data=serialize_debt(debt, now))


@app.route('/api/debts/<debt_id>/increase-interest', methods=['PATCH'])
@jwt_required()
def increase_interest(debt_id):
    debt = owned_debt(debt_id)
    if not debt:
        return error_response('Debt not found', 404)

    try:
        new_rate = to_money(request_data().get('newRate'), 'new interest rate')
    except InvalidInput as e:
        return error_response(str(e))
    if new_rate <= 0:
        return error_response('New interest rate must be greater than zero')

    debt.interest_rate = new_rate
    if debt.status != PAID:
        debt.current_amount = owed_amount(debt.principal, new_rate)
    db.session.commit()
    return create_response(data=serialize_debt(debt, datetime.utcnow()))


@app.route('/api/debts/<debt_id>/mark-paid', methods=['PATCH'])
@jwt_required()
def mark_debt_paid(debt_id):
    debt = owned_debt(debt_id)
    if not debt:
        return error_response('Debt not found', 404)

    repository.update_debt_valuation(debt, Decimal('0'), PAID)
    return create_response(data=serialize_debt(debt, datetime.utcnow()))


@app.route('/api/debts/<debt_id>', methods=['DELETE'])
@jwt_required()
def delete_debt(debt_id):
    debt = owned_debt(debt_id)
    if not debt:
        return error_response('Debt not found', 404)

    debt.active = False
    db.session.commit()
    return create_response(data={'message': 'Debt removed successfully'})


# Payments
@app.route('/api/payments', methods=['POST'])
@jwt_required()
def create_payment():
    data = request_data()
    try:
        amount = to_money(data.get('amount'), 'amount')
        payment_date = _optional_date(data.get('paymentDate'), 'payment date')
    except InvalidInput as e:
        return error_response(str(e))
    if amount <= 0:
        return error_response('Amount must be positive')

    debt = owned_debt(data.get('debtId'))
    if not debt:
        return error_response('Debt not found', 404)
    if debt.status == PAID:
        return error_response('Debt is already paid')

    now = datetime.utcnow()
    valuation = debt.valuation(now)
    currency = app.config['CURRENCY_CODE']
    if amount > valuation.remaining_amount:
        return error_response(
            f'Payment amount ({amount:.2f} {currency}) exceeds the remaining amount '
            f'({valuation.remaining_amount:.2f} {currency})'
        )

    try:
        payment = Payment(
            debt_id=debt.id,
            amount=amount,
            payment_date=payment_date or now,
            description=data.get('description'),
        )
        db.session.add(payment)

        # Payment and settlement are stored together
        if is_settled(valuation.owed_amount - debt.total_paid - amount):
            debt.current_amount = Decimal('0')
            debt.status = PAID
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error creating payment")
        return error_response(f'Error creating payment: {str(e)}', 500)

    return create_response(data=serialize_payment(payment)), 201


@app.route('/api/payments', methods=['GET'])
@jwt_required()
def get_payments():
    debt_id = request.args.get('debtId')
    if not debt_id:
        return error_response('debtId is required')

    debt = owned_debt(debt_id)
    if not debt:
        return error_response('Debt not found', 404)
    return create_response(data=[serialize_payment(p) for p in debt.active_payments])


@app.route('/api/payments/<payment_id>', methods=['GET'])
@jwt_required()
def get_payment(payment_id):
    payment = owned_payment(payment_id)
    if not payment:
        return error_response('Payment not found', 404)

    data = serialize_payment(payment)
    data['debt'] = serialize_debt(payment.debt, datetime.utcnow())
    return create_response(data=data)


@app.route('/api/payments/<payment_id>', methods=['DELETE'])
@jwt_required()
def delete_payment(payment_id):
    payment = owned_payment(payment_id)
    if not payment:
        return error_response('Payment not found', 404)

    debt = payment.debt
    repository.deactivate_payment(payment)

    # A settled debt reopens when the deletion leaves something to pay
    if debt.status == PAID:
        now = datetime.utcnow()
        owed = owed_amount(debt.principal, debt.interest_rate)
        if not is_settled(owed - debt.total_paid):
            repository.update_debt_valuation(debt, owed, derive_status(debt.due_date, now))

    return create_response(data={'message': 'Payment removed successfully'})


# Collaterals
@app.route('/api/collaterals', methods=['POST'])
@jwt_required()
def upload_collateral():
    file = request.files.get('file')
    debt_id = request.form.get('debtId')

    if not file or not file.filename:
        return error_response('No file uploaded')
    if not debt_id:
        return error_response('debtId is required')
    if file.mimetype not in ALLOWED_COLLATERAL_TYPES:
        return error_response('Invalid file type')

    debt = owned_debt(debt_id)
    if not debt:
        return error_response('Debt not found', 404)

    upload_folder = app.config['UPLOAD_FOLDER']
    os.makedirs(upload_folder, exist_ok=True)
    stored_filename = f"{secrets.token_hex(16)}-{secure_filename(file.filename) or 'file'}"
    path = os.path.join(upload_folder, stored_filename)

    try:
        file.save(path)
        collateral = Collateral(
            debt_id=debt.id,
            original_filename=file.filename,
            stored_filename=stored_filename,
            mime_type=file.mimetype,
            size=os.path.getsize(path),
            description=request.form.get('description'),
        )
        db.session.add(collateral)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        if os.path.exists(path):
            os.remove(path)
        logger.exception("Error uploading collateral")
        return error_response(f'Error uploading file: {str(e)}', 500)

    return create_response(data=serialize_collateral(collateral)), 201


@app.route('/api/collaterals', methods=['GET'])
@jwt_required()
def get_collaterals():
    debt_id = request.args.get('debtId')
    if not debt_id:
        return error_response('debtId is required')

    debt = owned_debt(debt_id)
    if not debt:
        return error_response('Debt not found', 404)
    return create_response(data=[serialize_collateral(c) for c in debt.active_collaterals])


@app.route('/api/collaterals/<collateral_id>', methods=['GET'])
@jwt_required()
def get_collateral(collateral_id):
    collateral = owned_collateral(collateral_id)
    if not collateral:
        return error_response('Collateral not found', 404)
    return create_response(data=serialize_collateral(collateral))


@app.route('/api/collaterals/<collateral_id>/download', methods=['GET'])
@jwt_required()
def download_collateral(collateral_id):
    collateral = owned_collateral(collateral_id)
    if not collateral:
        return error_response('Collateral not found', 404)

    upload_folder = app.config['UPLOAD_FOLDER']
    if not os.path.exists(os.path.join(upload_folder, collateral.stored_filename)):
        return error_response('File not found', 404)

    return send_from_directory(upload_folder, collateral.stored_filename,
                               mimetype=collateral.mime_type, as_attachment=True,
                               download_name=collateral.original_filename)


@app.route('/api/collaterals/<collateral_id>', methods=['DELETE'])
@jwt_required()
def delete_collateral(collateral_id):
    collateral = owned_collateral(collateral_id)
    if not collateral:
        return error_response('Collateral not found', 404)

    collateral.active = False
    db.session.commit()

    path = os.path.join(app.config['UPLOAD_FOLDER'], collateral.stored_filename)
    if os.path.exists(path):
        os.remove(path)

    return create_response(data={'message': 'Collateral removed successfully'})


# Notifications
@app.route('/api/notifications', methods=['GET'])
@jwt_required()
def get_notifications():
    query = Notification.query.filter_by(user_id=get_jwt_identity())

    debtor_id = request.args.get('debtorId')
    debt_id = request.args.get('debtId')
    status = request.args.get('status')
    if debtor_id:
        query = query.filter_by(debtor_id=debtor_id)
    if debt_id:
        query = query.filter_by(debt_id=debt_id)
    if status:
        query = query.filter_by(status=status)

    notifications = query.order_by(Notification.created_at.desc()).all()
    return create_response(data=[serialize_notification(n) for n in notifications])


@app.route('/api/notifications/send-manual/<debt_id>', methods=['POST'])
@jwt_required()
def send_manual_notification(debt_id):
    debt = owned_debt(debt_id)
    if not debt:
        return error_response('Debt not found', 404)

    try:
        notification = notification_service().send_manual(debt, request_data().get('message'))
    except InvalidInput as e:
        return error_response(str(e))

    sent = notification.status == 'SENT'
    return create_response(data={
        'sent': sent,
        'message': 'Notification sent successfully!' if sent else 'Failed to send notification',
        'notification': serialize_notification(notification)
    })


@app.route('/api/notifications/<notification_id>', methods=['DELETE'])
@jwt_required()
def delete_notification(notification_id):
    notification = Notification.query.filter_by(id=notification_id, user_id=get_jwt_identity()).first()
    if not notification:
        return error_response('Notification not found', 404)

    db.session.delete(notification)
    db.session.commit()
    return create_response(data={'message': 'Notification removed successfully'})


# Dashboard
@app.route('/api/dashboard/stats', methods=['GET'])
@jwt_required()
def get_dashboard_stats():
    user_id = get_jwt_identity()
    now = datetime.utcnow()
    week_ahead = now + timedelta(days=7)

    total_debtors = Debtor.query.filter_by(user_id=user_id, active=True).count()
    debts = Debt.query.filter_by(user_id=user_id, active=True).order_by(Debt.due_date.asc()).all()

    total_lent = Decimal('0')
    total_receivable = Decimal('0')
    total_overdue = Decimal('0')
    by_status = {PENDING: 0, OVERDUE: 0, PAID: 0}
    upcoming = []
    overdue = []

    for debt, valuation in valued_debts(debts, now):
        total_lent += Decimal(debt.principal)
        by_status[valuation.status] += 1
        if valuation.status == PAID:
            continue

        total_receivable += valuation.remaining_amount
        item = {
            'id': debt.id,
            'debtorName': debt.debtor.name,
            'debtorPhone': debt.debtor.phone,
            'principal': _money(debt.principal),
            'owedAmount': _money(valuation.owed_amount),
            'remainingAmount': _money(valuation.remaining_amount),
            'dueDate': _iso(debt.due_date),
            'status': valuation.status,
        }
        if valuation.status == OVERDUE:
            total_overdue += valuation.remaining_amount
            item['daysOverdue'] = days_overdue(debt.due_date, now)
            overdue.append(item)
        elif debt.due_date <= week_ahead:
            item['daysUntilDue'] = days_until_due(debt.due_date, now)
            upcoming.append(item)

    return create_response(data={
        'summary': {
            'totalDebtors': total_debtors,
            'totalLent': _money(total_lent),
            'totalReceivable': _money(total_receivable),
            'totalOverdue': _money(total_overdue),
            'activeDebts': by_status[PENDING] + by_status[OVERDUE],
        },
        'upcomingDebts': upcoming,
        'overdueDebts': overdue[:5],
        'statusCounts': {
            'pending': by_status[PENDING],
            'overdue': by_status[OVERDUE],
            'paid': by_status[PAID],
        }
    })


# Reports
def _report_range():
    return (_optional_date(request.args.get('startDate'), 'start date'),
            _optional_date(request.args.get('endDate'), 'end date'))


def _filtered_debts(user_id, now):
    start, end = _report_range()
    query = Debt.query.filter_by(user_id=user_id, active=True)
    if request.args.get('debtorId'):
        query = query.filter_by(debtor_id=request.args['debtorId'])
    if start:
        query = query.filter(Debt.created_at >= start)
    if end:
        query = query.filter(Debt.created_at <= end)

    status = request.args.get('status')
    return [debt for debt, valuation in valued_debts(query.order_by(Debt.created_at.desc()).all(), now)
            if not status or valuation.status == status]


def _filtered_payments(user_id):
    start, end = _report_range()
    query = Payment.query.join(Debt).filter(Payment.active.is_(True), Debt.user_id == user_id)
    if request.args.get('debtId'):
        query = query.filter(Payment.debt_id == request.args['debtId'])
    if request.args.get('debtorId'):
        query = query.filter(Debt.debtor_id == request.args['debtorId'])
    if start:
        query = query.filter(Payment.payment_date >= start)
    if end:
        query = query.filter(Payment.payment_date <= end)
    return query.order_by(Payment.payment_date.desc()).all()


def _send_workbook(wb, prefix):
    filename = f'{prefix}_{datetime.now().strftime("%Y%m%d_%H%M%S")}.xlsx'
    return send_file(report_generator.to_stream(wb), mimetype=XLSX_MIMETYPE,
                     as_attachment=True, download_name=filename)


@app.route('/api/reports/debts', methods=['GET'])
@jwt_required()
def export_debts_report():
    now = datetime.utcnow()
    try:
        debts = _filtered_debts(get_jwt_identity(), now)
    except InvalidInput as e:
        return error_response(str(e))
    return _send_workbook(report_generator.debts_report(debts, now), 'debts_report')


@app.route('/api/reports/payments', methods=['GET'])
@jwt_required()
def export_payments_report():
    try:
        payments = _filtered_payments(get_jwt_identity())
    except InvalidInput as e:
        return error_response(str(e))
    return _send_workbook(report_generator.payments_report(payments), 'payments_report')


@app.route('/api/reports/debtors', methods=['GET'])
@jwt_required()
def export_debtors_report():
    debtors = (Debtor.query.filter_by(user_id=get_jwt_identity(), active=True)
               .order_by(Debtor.name.asc()).all())
    return _send_workbook(report_generator.debtors_report(debtors, datetime.utcnow()), 'debtors_report')


@app.route('/api/reports/complete', methods=['GET'])
@jwt_required()
def export_complete_report():
    user_id = get_jwt_identity()
    now = datetime.utcnow()
    try:
        debts = _filtered_debts(user_id, now)
        payments = _filtered_payments(user_id)
    except InvalidInput as e:
        return error_response(str(e))

    debtors = Debtor.query.filter_by(user_id=user_id, active=True).order_by(Debtor.name.asc()).all()
    wb = report_generator.complete_report(debtors, debts, payments, now)
    return _send_workbook(wb, 'complete_report')


if __name__ == '__main__':
    from config import configure_logging
    configure_logging()
    with app.app_context():
        db.create_all()
    app.run(debug=True, host='0.0.0.0', port=5000)
