#!/usr/bin/env python3
"""
DATABASE SEEDING SCRIPT
Creates demo lenders, debtors, debts and payments for the Debt Tracker API
"""

from app import app, db
from models import User, Debtor, Debt, Payment
from valuation import PAID, derive_status, owed_amount
from datetime import datetime, timedelta
from decimal import Decimal
import random

DEBTOR_NAMES = [
    'Ana Machava', 'Carlos Mondlane', 'Fatima Sitoe', 'Jose Cossa', 'Lucia Nhantumbo',
    'Manuel Tembe', 'Rosa Chissano', 'Paulo Macuacua', 'Teresa Mabunda', 'Alberto Muianga',
    'Graca Langa', 'Ernesto Matsinhe'
]

LOCATIONS = ['Maputo', 'Matola', 'Beira', 'Nampula', 'Xai-Xai', 'Inhambane']


def seed_data():
    with app.app_context():
        print("🌱 Starting database seeding...")

        db.drop_all()
        db.create_all()

        users_data = [
            {'name': 'Demo Lender', 'email': 'demo@debttracker.com', 'password': 'demo123', 'phone': '841234567'},
            {'name': 'Second Lender', 'email': 'lender@debttracker.com', 'password': 'lender123', 'phone': '851234567'},
        ]

        users = []
        for u in users_data:
            pwd = u.pop('password')
            user = User(**u)
            user.set_password(pwd)
            users.append(user)
            db.session.add(user)
        db.session.flush()
        print(f"✅ {len(users)} users")

        debtors = []
        for i, name in enumerate(DEBTOR_NAMES):
            debtor = Debtor(
                user_id=users[i % len(users)].id,
                name=name,
                phone=f"8{random.choice('2456')}{random.randint(1000000, 9999999)}",
                location=random.choice(LOCATIONS),
                description='Seeded demo debtor'
            )
            debtors.append(debtor)
            db.session.add(debtor)
        db.session.flush()
        print(f"✅ {len(debtors)} debtors")

        now = datetime.utcnow()
        debt_count = 0
        payment_count = 0
        for debtor in debtors:
            for _ in range(random.randint(1, 3)):
                principal = Decimal(random.choice([500, 1000, 2500, 5000, 10000, 15000]))
                rate = Decimal(random.choice([0, 5, 10, 15, 20]))
                owed = owed_amount(principal, rate)
                loan_date = now - timedelta(days=random.randint(10, 120))
                due_date = loan_date + timedelta(days=random.choice([15, 30, 45, 60, 90]))

                debt = Debt(
                    user_id=debtor.user_id,
                    debtor_id=debtor.id,
                    principal=principal,
                    interest_rate=rate,
                    loan_date=loan_date,
                    due_date=due_date,
                    current_amount=owed,
                    status=derive_status(due_date, now),
                    auto_notify=random.random() < 0.6,
                    notify_periodicity=random.choice([1, 3, 5, 7])
                )
                db.session.add(debt)
                db.session.flush()
                debt_count += 1

                # Roughly a quarter settled, the rest partially paid or untouched
                roll = random.random()
                if roll < 0.25:
                    paid_total = owed
                elif roll < 0.6:
                    paid_total = (owed * Decimal(random.choice(['0.2', '0.4', '0.5']))).quantize(Decimal('0.01'))
                else:
                    paid_total = Decimal('0')

                if paid_total > 0:
                    db.session.add(Payment(
                        debt_id=debt.id,
                        amount=paid_total,
                        payment_date=loan_date + timedelta(days=random.randint(1, 10)),
                        description='Seeded payment'
                    ))
                    payment_count += 1
                    if paid_total == owed:
                        debt.status = PAID
                        debt.current_amount = Decimal('0')

        db.session.commit()
        print(f"✅ {debt_count} debts")
        print(f"✅ {payment_count} payments")

        print("\n🎉 Seeding complete!")
        print("Login with demo@debttracker.com / demo123")


if __name__ == '__main__':
    seed_data()
