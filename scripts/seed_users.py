"""
Seed one user per role for local development and print a bearer token for each.
Run from the repository root: python -m scripts.seed_users
"""
from leave_tracker.database import SessionLocal, init_db
from leave_tracker.models.user import User, UserRole
from leave_tracker.services.auth import create_access_token


def create_user(db, email, full_name, role, assigned_to=None):
    # Check if user already exists to avoid unique constraint errors
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        print(f"User {email} already exists. Skipping.")
        return existing_user

    user = User(email=email, full_name=full_name, role=role, assigned_to=assigned_to, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    print(f"Created {role.value} -> {email}")
    return user


def main():
    init_db()
    db = SessionLocal()
    try:
        hr = create_user(db, "hr@example.com", "HR Officer", UserRole.HR)
        gm = create_user(db, "gm@example.com", "General Manager", UserRole.GM)
        ae = create_user(db, "ae@example.com", "Area Executive", UserRole.AE)
        employee = create_user(db, "employee@example.com", "Staff Member", UserRole.EMPLOYEE, assigned_to=gm.id)

        for user in (hr, gm, ae, employee):
            token = create_access_token(data={"sub": str(user.id)})
            print(f"{user.email}: Bearer {token}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
