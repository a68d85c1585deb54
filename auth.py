import logging
from datetime import timedelta, timezone

from fastapi import APIRouter, Depends
from pymongo.database import Database

import config
from database import create_document, get_by_id, get_db, update_by_id, utcnow
from errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthorized
from mailer import send_otp_email
from schemas import (
    Envelope,
    ForgotPasswordInput,
    LoginInput,
    OtpRecord,
    RegisterInput,
    ResetPasswordInput,
    User,
    VerifyOtpInput,
)
from security import (
    create_access_token,
    create_reset_token,
    decode_reset_token,
    generate_otp,
    hash_otp,
    hash_password,
    otp_matches,
    verify_password,
)
from users import public_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _find_user_by_email(db: Database, email: str) -> dict:
    user = db["user"].find_one({"email": email.lower()})
    if not user:
        raise NotFound("This user does not exist")
    return user


@router.post("/register", status_code=201, response_model=Envelope, response_model_exclude_none=True)
def register(payload: RegisterInput, db: Database = Depends(get_db)):
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise Conflict("Email already exists")
    user = User(
        user_name=payload.user_name,
        email=email,
        phone=payload.phone,
        password_hash=hash_password(payload.password),
    )
    doc = create_document(db, "user", user)
    logger.info("Registered user %s", doc["_id"])
    return Envelope(
        message="User registered successfully",
        data={"user": public_user(doc), "token": create_access_token(doc)},
    )


@router.post("/login", response_model=Envelope, response_model_exclude_none=True)
def login(payload: LoginInput, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("passwordHash", "")):
        logger.info("Failed login attempt")
        raise Unauthorized("Invalid email or password")
    # blocked users are refused a token only once their credentials check out
    if user.get("isBlocked"):
        raise Forbidden("Your account has been blocked. Please contact support.")
    return Envelope(
        message="Login successful",
        data={"user": public_user(user), "token": create_access_token(user)},
    )


@router.post("/forgotPassword", response_model=Envelope, response_model_exclude_none=True)
def forgot_password(payload: ForgotPasswordInput, db: Database = Depends(get_db)):
    user = _find_user_by_email(db, payload.email)
    user_id = str(user["_id"])
    db["otp"].delete_many({"user": user_id})

    otp = generate_otp()
    record = OtpRecord(
        user=user_id,
        otp=hash_otp(otp),
        expires_at=utcnow() + timedelta(minutes=config.OTP_EXPIRE_MINUTES),
    )
    create_document(db, "otp", record)
    logger.info("Issued OTP for user %s", user_id)

    send_otp_email(user["email"], user.get("userName", ""), otp)
    return Envelope(message="OTP has been sent to your email")


@router.post("/verify-otp", response_model=Envelope, response_model_exclude_none=True)
def verify_otp(payload: VerifyOtpInput, db: Database = Depends(get_db)):
    user = _find_user_by_email(db, payload.email)
    user_id = str(user["_id"])

    record = db["otp"].find_one({"user": user_id})
    if not record:
        raise NotFound("No OTP found or OTP expired")

    expires_at = record["expiresAt"]
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at < utcnow():
        db["otp"].delete_one({"_id": record["_id"]})
        raise InvalidInput("OTP has expired, please request a new one")

    if not otp_matches(payload.otp, record["otp"]):
        raise InvalidInput("Invalid OTP")

    db["otp"].delete_one({"_id": record["_id"]})
    return Envelope(
        message="OTP verified successfully. You can now reset your password",
        data={"resetToken": create_reset_token(user_id)},
    )


@router.post("/reset-password", response_model=Envelope, response_model_exclude_none=True)
def reset_password(payload: ResetPasswordInput, db: Database = Depends(get_db)):
    user_id = decode_reset_token(payload.reset_token)
    user = get_by_id(db, "user", user_id, "User")
    update_by_id(db, "user", user["_id"], {"passwordHash": hash_password(payload.new_password)}, "User")
    logger.info("Password reset for user %s", user_id)
    return Envelope(message="Password reset successfully. You can now log in with your new password.")
