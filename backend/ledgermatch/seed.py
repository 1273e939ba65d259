"""
Seed script for the category vocabulary.
"""

from sqlalchemy.exc import SQLAlchemyError

from ledgermatch.database import SessionLocal
from ledgermatch.models import Category


CATEGORIES = [
    {"name": "Groceries", "name_local": "מזון וצריכה", "keywords": ["shufersal", "שופרסל", "rami levy", "רמי לוי", "victory", "ויקטורי", "yochananof", "יוחננוף", "osher ad", "אושר עד"]},
    {"name": "Dining", "name_local": "מסעדות ובתי קפה", "keywords": ["cafe", "קפה", "aroma", "ארומה", "wolt", "וולט", "10bis", "תן ביס", "restaurant", "מסעדה"]},
    {"name": "Transportation", "name_local": "תחבורה", "keywords": ["rav kav", "רב קו", "gett", "גט", "pango", "פנגו", "moovit", "paz", "פז", "sonol", "סונול", "delek", "דלק"]},
    {"name": "Housing", "name_local": "דיור", "keywords": ["arnona", "ארנונה", "vaad bayit", "ועד בית", "rent", "שכירות"]},
    {"name": "Utilities", "name_local": "חשבונות", "keywords": ["חברת החשמל", "iec", "bezeq", "בזק", "partner", "פרטנר", "cellcom", "סלקום", "הוט"]},
    {"name": "Health", "name_local": "בריאות", "keywords": ["super-pharm", "סופר פארם", "maccabi", "מכבי", "clalit", "כללית", "be pharm", "בי פארם"]},
    {"name": "Shopping", "name_local": "קניות", "keywords": ["amazon", "aliexpress", "ikea", "איקאה", "zara", "fox", "פוקס", "castro", "קסטרו"]},
    {"name": "Entertainment", "name_local": "פנאי ובילוי", "keywords": ["netflix", "spotify", "yes planet", "cinema city", "סינמה סיטי"]},
    {"name": "Education", "name_local": "חינוך", "keywords": ["גן", "school", "בית ספר", "university", "אוניברסיטה"]},
    {"name": "Insurance", "name_local": "ביטוח", "keywords": ["ביטוח", "insurance", "harel", "הראל", "migdal", "מגדל", "clal", "כלל ביטוח"]},
    {"name": "Transfers", "name_local": "העברות", "keywords": ["bit", "ביט", "paybox", "פייבוקס", "pepper", "פפר"]},
    {"name": "Fees", "name_local": "עמלות", "keywords": ["עמלה", "fee", "דמי כרטיס"]},
    {"name": "Income", "name_local": "הכנסות", "keywords": ["משכורת", "salary"]},
    {"name": "Other", "name_local": "אחר", "keywords": []},
]


def seed_categories():
    """Insert missing vocabulary entries; existing names are left untouched."""

    db = SessionLocal()

    try:
        existing = {name for (name,) in db.query(Category.name).all()}

        added = 0
        for cat_data in CATEGORIES:
            if cat_data["name"] in existing:
                continue
            db.add(Category(
                name=cat_data["name"],
                name_local=cat_data["name_local"],
                keywords=cat_data["keywords"],
            ))
            added += 1

        db.commit()
        print(f"Seeded {added} categories ({len(existing)} already present)")

    except SQLAlchemyError as e:
        print(f"Error seeding categories: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_categories()
