"""
Demo data for the admin console: sample categories, users, products, orders
and reviews. People, addresses and free text come from Faker; the pharmacy
fields are drawn from fixed pools.
"""
import logging
import random
from datetime import timedelta
from typing import Dict, List

from faker import Faker
from pymongo.errors import DuplicateKeyError

from catalog import unique_slug
from database import create_document, get_db, utcnow
from errors import ValidationError
from reviews import recompute_product_rating
from schemas import Address, Category, Order, OrderItem, PrescriptionRecord, Product, Review, ShippingAddress, User
from security import hash_password

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "password123"

MEDICAL_CONDITIONS = [
    "Diabetes", "Hypertension", "Asthma", "Arthritis", "Depression", "Anxiety",
    "High Cholesterol", "Migraine", "Insomnia", "Allergies", "Heart Disease",
    "Osteoporosis", "Thyroid Disorder", "Epilepsy", "Psoriasis",
]

ALLERGIES = [
    "Penicillin", "Sulfa drugs", "Aspirin", "Ibuprofen", "Codeine", "Morphine",
    "Latex", "Peanuts", "Shellfish", "Eggs", "Milk", "Wheat", "Soy",
]

CATEGORIES = {
    "Pain Relief": ["Headache", "Muscle Pain", "Joint Pain", "Fever", "Migraine"],
    "Antibiotics": ["Bacterial Infections", "Skin Infections", "Respiratory Infections"],
    "Diabetes Management": ["Insulin", "Oral Medications", "Blood Sugar Monitoring"],
    "Cardiovascular": ["Blood Pressure", "Cholesterol", "Heart Disease", "Blood Thinners"],
    "Respiratory": ["Asthma", "Allergies", "Cough & Cold", "Bronchodilators"],
    "Mental Health": ["Antidepressants", "Anti-anxiety", "Sleep Aids", "Mood Stabilizers"],
    "Digestive Health": ["Acid Reflux", "Constipation", "Diarrhea", "Nausea"],
    "Skin Care": ["Acne", "Eczema", "Psoriasis", "Antifungal", "Wound Care"],
    "Vitamins & Supplements": ["Multivitamins", "Minerals", "Herbal Supplements", "Protein"],
    "First Aid": ["Bandages", "Antiseptics", "Emergency Kits"],
}

BRANDS = [
    "Pfizer", "Johnson & Johnson", "Novartis", "Roche", "Merck", "GlaxoSmithKline",
    "Sanofi", "AstraZeneca", "Bayer", "Eli Lilly", "Abbott", "Amgen",
]

MEDICATIONS = [
    "Acetaminophen", "Ibuprofen", "Naproxen", "Aspirin", "Tramadol",
    "Amoxicillin", "Azithromycin", "Ciprofloxacin", "Doxycycline",
    "Metformin", "Insulin Glargine", "Glipizide", "Sitagliptin",
    "Lisinopril", "Amlodipine", "Atorvastatin", "Metoprolol", "Losartan",
    "Albuterol", "Fluticasone", "Montelukast",
    "Sertraline", "Fluoxetine", "Escitalopram", "Bupropion",
    "Omeprazole", "Lansoprazole", "Pantoprazole", "Famotidine",
    "Hydrocortisone", "Clotrimazole", "Mupirocin", "Benzoyl Peroxide",
]

CONTROLLED = {"Tramadol", "Sertraline", "Fluoxetine"}
DOSAGE_FORMS = ["tablet", "capsule", "liquid", "cream", "ointment", "injection", "inhaler", "drops", "suppository", "patch"]
STRENGTHS = ["5mg", "10mg", "20mg", "25mg", "50mg", "100mg", "200mg", "250mg", "500mg", "1000mg"]
STORAGE_CONDITIONS = [
    "Store at room temperature (20-25°C)",
    "Store in refrigerator (2-8°C)",
    "Keep away from heat and light",
    "Store in a dry place",
]
SIDE_EFFECTS = [
    "Nausea", "Dizziness", "Headache", "Drowsiness", "Diarrhea", "Constipation",
    "Rash", "Itching", "Stomach upset", "Dry mouth", "Insomnia",
]
CONTRAINDICATIONS = ["Pregnancy", "Breastfeeding", "Liver disease", "Kidney disease", "Heart disease"]
DRUG_INTERACTIONS = ["Blood thinners", "Antidepressants", "Blood pressure medications", "Diabetes medications"]

ORDER_STATUSES = ["pending", "processing", "shipped", "delivered", "cancelled"]
PAYMENT_METHODS = ["credit_card", "paypal", "bank_transfer", "cash_on_delivery"]
PAYMENT_STATUSES = ["pending", "paid", "failed"]

DATA_TYPES = ("users", "categories", "products", "orders", "reviews")
MAX_QUANTITY = 100


class DemoDataGenerator:
    def __init__(self, locale: str = "en_US"):
        self.db = get_db()
        self.fake = Faker(locale)
        self._password_hash = None

    def _address(self) -> Dict[str, str]:
        return {
            "street": self.fake.street_address(),
            "city": self.fake.city(),
            "state": self.fake.state_abbr(),
            "zip_code": self.fake.zipcode(),
            "country": "United States",
        }

    def _phone(self) -> str:
        return self.fake.numerify("(###) ###-####")

    def _user_ids(self) -> List[str]:
        ids = [str(u["_id"]) for u in self.db["user"].find({"role": "user"}, {"_id": 1})]
        if not ids:
            raise ValidationError("No users found in database. Please generate users first.")
        return ids

    def _products(self) -> List[dict]:
        products = list(self.db["product"].find({}, {"name": 1, "price": 1, "prescription_required": 1}))
        if not products:
            raise ValidationError("No products found in database. Please generate products first.")
        return products

    def _category_ids(self) -> List[str]:
        ids = [str(c["_id"]) for c in self.db["category"].find({}, {"_id": 1})]
        if not ids:
            raise ValidationError("No categories found in database. Please generate categories first.")
        return ids

    def generate_users(self, quantity: int) -> int:
        if self._password_hash is None:
            self._password_hash = hash_password(DEMO_PASSWORD)
        created = 0
        for _ in range(quantity):
            first, last = self.fake.first_name(), self.fake.last_name()
            email = f"{self.fake.user_name()}{self.fake.random_int(10, 99999)}@demo-pharmacy.com".lower()
            prescriptions = [
                PrescriptionRecord(
                    medication=random.choice(MEDICATIONS),
                    dosage=random.choice(STRENGTHS),
                    frequency=random.choice(["Once daily", "Twice daily", "Three times daily", "As needed"]),
                    start_date=self.fake.date_time_between(start_date="-1y", end_date="-10d"),
                    end_date=self.fake.date_time_between(start_date="+1d", end_date="+1y"),
                )
                for _ in range(random.randint(0, 2))
            ]
            user = User(
                first_name=first,
                last_name=last,
                email=email,
                password_hash=self._password_hash,
                phone=self._phone(),
                address=Address(**self._address()),
                is_verified=self.fake.boolean(chance_of_getting_true=80),
                date_of_birth=self.fake.date_time_between(start_date="-80y", end_date="-18y"),
                medical_conditions=random.sample(MEDICAL_CONDITIONS, random.randint(0, 3)),
                allergies=random.sample(ALLERGIES, random.randint(0, 2)),
                prescriptions=prescriptions,
            )
            try:
                create_document("user", user)
                created += 1
            except DuplicateKeyError:
                logger.debug("Skipping duplicate demo email %s", email)
        logger.info("Generated %d users", created)
        return created

    def generate_categories(self, quantity: int) -> int:
        """Create `quantity` top-level categories, each with 1-3 subcategories."""
        created = 0
        top_level = 0
        index = 0
        names = list(CATEGORIES)
        while top_level < quantity:
            base = names[index % len(names)]
            name = base if index < len(names) else f"{base} {index // len(names) + 1}"
            index += 1
            if self.db["category"].find_one({"name": name}):
                continue
            parent_id = create_document("category", Category(
                name=name,
                slug=unique_slug("category", name),
                description=f"{name} medications and products",
                sort_order=index,
            ))
            top_level += 1
            created += 1
            for sub in random.sample(CATEGORIES[base], random.randint(1, 3)):
                sub_name = f"{sub} ({name})"
                if self.db["category"].find_one({"name": sub_name}):
                    continue
                create_document("category", Category(
                    name=sub_name,
                    slug=unique_slug("category", sub_name),
                    description=f"{sub} products",
                    parent_id=parent_id,
                ))
                created += 1
        logger.info("Generated %d categories", created)
        return created

    def generate_products(self, quantity: int) -> int:
        category_ids = self._category_ids()
        now = utcnow()
        for _ in range(quantity):
            medication = random.choice(MEDICATIONS)
            strength = random.choice(STRENGTHS)
            form = random.choice(DOSAGE_FORMS)
            name = f"{medication} {strength} {form.title()}"
            price = round(random.uniform(4.99, 149.99), 2)
            on_sale = random.random() < 0.2
            slug = unique_slug("product", name)
            create_document("product", Product(
                name=name,
                slug=slug,
                description=f"{medication} {strength} {form} for everyday treatment.",
                short_description=f"{medication} {strength}",
                brand=random.choice(BRANDS),
                category_id=random.choice(category_ids),
                subcategory_id=random.choice(category_ids) if random.random() < 0.7 else None,
                images=[f"https://images.demo-pharmacy.com/{slug}.jpg"],
                price=price,
                compare_price=round(price * random.uniform(1.1, 1.5), 2) if random.random() < 0.3 else None,
                stock_quantity=random.randint(0, 500),
                low_stock_threshold=random.randint(5, 20),
                active_ingredient=medication,
                strength=strength,
                dosage_form=form,
                prescription_required=random.random() < 0.4,
                controlled_substance=medication in CONTROLLED,
                expiry_date=now + timedelta(days=random.randint(180, 1095)),
                storage_conditions=random.choice(STORAGE_CONDITIONS),
                side_effects=random.sample(SIDE_EFFECTS, random.randint(1, 4)),
                contraindications=random.sample(CONTRAINDICATIONS, random.randint(0, 2)),
                drug_interactions=random.sample(DRUG_INTERACTIONS, random.randint(0, 2)),
                pregnancy_category=random.choice(["A", "B", "C", "D", "X", "N/A"]),
                is_featured=random.random() < 0.2,
                is_on_sale=on_sale,
                sale_percentage=random.choice([10, 15, 20, 25]) if on_sale else None,
                tags=[medication.lower(), form],
                requires_cold_storage=form == "injection",
            ))
        logger.info("Generated %d products", quantity)
        return quantity

    def generate_orders(self, quantity: int) -> int:
        user_ids = self._user_ids()
        products = self._products()
        for _ in range(quantity):
            picks = random.sample(products, min(len(products), random.randint(1, 5)))
            items = []
            for p in picks:
                qty = random.randint(1, 3)
                items.append(OrderItem(product_id=str(p["_id"]), name=p["name"], quantity=qty, price=p["price"], total=p["price"] * qty))
            subtotal = sum(i.total for i in items)
            tax = round(subtotal * 0.08, 2)
            shipping = round(random.uniform(5, 15), 2)
            address = self._address()
            created_at = utcnow() - timedelta(days=random.randint(0, 60))
            order = Order(
                user_id=random.choice(user_ids),
                items=items,
                subtotal=subtotal,
                tax=tax,
                shipping=shipping,
                total=subtotal + tax + shipping,
                status=random.choice(ORDER_STATUSES),
                payment_status=random.choice(PAYMENT_STATUSES),
                payment_method=random.choice(PAYMENT_METHODS),
                shipping_address=ShippingAddress(
                    first_name=self.fake.first_name(),
                    last_name=self.fake.last_name(),
                    phone=self._phone(),
                    **address,
                ),
                tracking_number=f"ORD-{created_at:%y%m%d}-{random.randint(0, 9999):04d}",
                prescription_required=any(p.get("prescription_required") for p in picks),
                prescription_approved=random.random() < 0.7,
            )
            doc = order.model_dump()
            doc["created_at"] = created_at
            create_document("order", doc)
        logger.info("Generated %d orders", quantity)
        return quantity

    def generate_reviews(self, quantity: int) -> int:
        user_ids = self._user_ids()
        product_ids = [str(p["_id"]) for p in self._products()]
        touched = set()
        created = 0
        for _ in range(quantity):
            review = Review(
                user_id=random.choice(user_ids),
                product_id=random.choice(product_ids),
                rating=random.randint(1, 5),
                title=self.fake.sentence(nb_words=4).rstrip("."),
                comment=self.fake.paragraph(nb_sentences=3),
                is_verified=random.random() < 0.8,
            )
            try:
                create_document("review", review)
            except DuplicateKeyError:
                logger.debug("Skipping duplicate review")
                continue
            touched.add(review.product_id)
            created += 1
        for product_id in touched:
            recompute_product_rating(product_id)
        logger.info("Generated %d reviews", created)
        return created

    def generate(self, data_type: str, quantity: int) -> int:
        if data_type not in DATA_TYPES:
            raise ValidationError("Invalid data type. Must be one of: " + ", ".join(DATA_TYPES))
        if quantity <= 0:
            return 0
        return getattr(self, f"generate_{data_type}")(quantity)

    def generate_all(self, quantities: Dict[str, int]) -> Dict[str, int]:
        # dependency order
        return {t: self.generate(t, quantities[t]) for t in ("categories", "users", "products", "orders", "reviews")}

    def clear_all(self):
        self.db["review"].delete_many({})
        self.db["order"].delete_many({})
        self.db["cart"].delete_many({})
        self.db["product"].delete_many({})
        self.db["category"].delete_many({})
        user_ids = [str(u["_id"]) for u in self.db["user"].find({"role": "user"}, {"_id": 1})]
        self.db["session"].delete_many({"user_id": {"$in": user_ids}})
        self.db["user"].delete_many({"role": "user"})
        logger.info("Cleared demo data")

    def stats(self) -> Dict[str, int]:
        return {
            "users": self.db["user"].count_documents({"role": "user"}),
            "categories": self.db["category"].count_documents({}),
            "products": self.db["product"].count_documents({}),
            "orders": self.db["order"].count_documents({}),
            "reviews": self.db["review"].count_documents({}),
        }
