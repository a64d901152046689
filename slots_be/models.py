from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
from sqlalchemy import BigInteger, CheckConstraint, JSON

db = SQLAlchemy()

class User(db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    balance = db.Column(BigInteger, default=0, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (CheckConstraint('balance >= 0', name='ck_user_balance_non_negative'),)

    deposits = db.relationship('Deposit', back_populates='user', lazy=True)
    slot_spins = db.relationship('SlotSpin', back_populates='user', lazy='dynamic')
    transactions = db.relationship('Transaction', backref='user', lazy=True)

    def __repr__(self):
        return f"<User {self.username}>"

class Deposit(db.Model):
    __tablename__ = 'deposit'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    amount = db.Column(BigInteger, nullable=False)
    payment_hash = db.Column(db.String(128), unique=True, nullable=False, index=True)
    payment_request = db.Column(db.Text, nullable=False)
    memo = db.Column(db.String(255), nullable=True)
    paid = db.Column(db.Boolean, default=False, nullable=False, index=True)
    credited_amount = db.Column(BigInteger, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship('User', back_populates='deposits')

    def __repr__(self):
        return f"<Deposit {self.id} (User: {self.user_id}, Amount: {self.amount}, Paid: {self.paid})>"

class SlotSpin(db.Model):
    __tablename__ = 'slot_spin'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    nonce = db.Column(db.String(64), unique=True, nullable=False)
    spin_result = db.Column(JSON, nullable=False)
    winning_lines = db.Column(JSON, nullable=False)
    bet_credits = db.Column(db.Integer, nullable=False)
    sats_per_credit = db.Column(db.Integer, nullable=False)
    bet_amount = db.Column(BigInteger, nullable=False)
    credits_won = db.Column(BigInteger, nullable=False)
    win_amount = db.Column(BigInteger, nullable=False)
    balance_after = db.Column(BigInteger, nullable=False)
    spin_time = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    user = db.relationship('User', back_populates='slot_spins')

    def __repr__(self):
        return f"<SlotSpin {self.id} (User: {self.user_id}, Bet: {self.bet_amount}, Win: {self.win_amount})>"

class Transaction(db.Model):
    __tablename__ = 'transaction'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    amount = db.Column(BigInteger, nullable=False)
    transaction_type = db.Column(db.String(50), nullable=False, index=True)
    status = db.Column(db.String(50), default='completed', nullable=False, index=True)
    reference = db.Column(db.String(160), unique=True, nullable=True)
    details = db.Column(JSON, nullable=True)
    slot_spin_id = db.Column(db.Integer, db.ForeignKey('slot_spin.id'), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    slot_spin = db.relationship('SlotSpin', backref=db.backref('transactions', lazy='dynamic'))

    def __repr__(self):
        return f"<Transaction {self.id} (User: {self.user_id}, Type: {self.transaction_type}, Amount: {self.amount})>"
