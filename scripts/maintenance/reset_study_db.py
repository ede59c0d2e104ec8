"""
Reset the flashcard study database.

DANGEROUS: This deletes all flashcards and review history!
Only use when you want to start fresh for testing.

Usage:
    python -m scripts.maintenance.reset_study_db
"""

from flashdeck import fsrs
from flashdeck.config import load_settings


def main():
    settings = load_settings()

    print("=" * 60)
    print("WARNING: Reset Study Database")
    print("=" * 60)
    print()
    print("This will DELETE:")
    print("  - All flashcards and their memory state (stability, difficulty, due dates)")
    print("  - All review logs")
    print()
    if settings.test_mode:
        print("TEST_MODE is on: the test database will be reset.")
        print()

    response = input("Are you sure you want to reset? (type 'yes' to confirm): ")

    if response.lower() == "yes":
        print("\nResetting database...")
        fsrs.reset_db(fsrs.get_engine(settings))
        print("✓ Database reset complete!")
        print("\nThe database now has empty tables.")
    else:
        print("\nCancelled. No changes made.")


if __name__ == "__main__":
    main()
