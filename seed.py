from faker import Faker
from loguru import logger

import config
from auth import hash_password
from database import db, create_document
from schemas import Category, Product, User

DEMO_CATEGORIES = [
    {"name": "Mobiles", "slug": "mobiles", "description": "Smartphones & Accessories", "image": "https://images.unsplash.com/photo-1511707171634-5f897ff02aa9?w=100"},
    {"name": "Electronics", "slug": "electronics", "description": "TV, Laptops, Cameras", "image": "https://images.unsplash.com/photo-1593359677879-a4bb92f829d1?w=100"},
    {"name": "Fashion", "slug": "fashion", "description": "Clothing, Footwear, Watches", "image": "https://images.unsplash.com/photo-1542272604-787c3835535d?w=100"},
    {"name": "Home & Furniture", "slug": "home-furniture", "description": "Furniture, Decor, Kitchen", "image": "https://images.unsplash.com/photo-1586023492125-27b2c045efd7?w=100"},
    {"name": "Beauty", "slug": "beauty", "description": "Makeup, Skincare, Perfumes", "image": "https://images.unsplash.com/photo-1596462502278-27bfdc403348?w=100"},
]

# category slug -> products
DEMO_PRODUCTS = {
    "mobiles": [
        {"name": "iPhone 15 Pro", "description": "Latest iPhone with A17 Pro chip", "price": 159900, "original_price": 179900, "images": ["https://images.unsplash.com/photo-1695048133142-1a20484d2569?w=400"], "stock": 25, "rating": 4.7, "num_reviews": 2341, "brand": "Apple", "is_featured": True},
        {"name": "Samsung Galaxy S24", "description": "Premium Android smartphone", "price": 134999, "original_price": 149999, "images": ["https://images.unsplash.com/photo-1610945265064-0e34e5519bbf?w=400"], "stock": 30, "rating": 4.6, "num_reviews": 1892, "brand": "Samsung", "is_featured": True},
    ],
    "electronics": [
        {"name": "MacBook Air M3", "description": "Apple MacBook Air with M3 chip", "price": 134900, "original_price": 144900, "images": ["https://images.unsplash.com/photo-1517336714731-489689fd1ca8?w=400"], "stock": 20, "rating": 4.8, "num_reviews": 1567, "brand": "Apple", "is_featured": True},
        {"name": "Sony WH-1000XM5", "description": "Premium noise cancelling headphones", "price": 29990, "original_price": 34990, "images": ["https://images.unsplash.com/photo-1505740420928-5e560c06d30e?w=400"], "stock": 40, "rating": 4.7, "num_reviews": 5678, "brand": "Sony", "is_featured": True},
    ],
    "fashion": [
        {"name": "Classic Cotton Tee", "description": "Soft cotton unisex t-shirt", "price": 399, "original_price": 799, "images": ["https://images.unsplash.com/photo-1520975916090-3105956dac38?w=400"], "stock": 100, "rating": 4.3, "num_reviews": 412, "brand": "Roadster"},
        {"name": "Casual Sneakers", "description": "Comfortable everyday wear", "price": 2499, "original_price": 3999, "images": ["https://images.unsplash.com/photo-1525966222134-fcfa99b8ae77?w=400"], "stock": 50, "rating": 4.2, "num_reviews": 733, "brand": "Nike"},
    ],
    "home-furniture": [
        {"name": "Ceramic Mug", "description": "12oz matte finish mug", "price": 249, "original_price": 399, "images": ["https://images.unsplash.com/photo-1525385133512-2f3bdd039054?w=400"], "stock": 200, "rating": 4.8, "num_reviews": 128, "brand": "Home Centre"},
    ],
    "beauty": [
        {"name": "Vitamin C Face Serum", "description": "Brightening serum for all skin types", "price": 545, "original_price": 699, "images": ["https://images.unsplash.com/photo-1596462502278-27bfdc403348?w=400"], "stock": 80, "rating": 4.4, "num_reviews": 964, "brand": "Minimalist"},
    ],
}

DEMO_CUSTOMERS = 5


def seed_demo_data() -> dict:
    """Wipe the store and load demo data."""
    for name in ("user", "category", "product", "cart", "order"):
        db[name].delete_many({})

    admin = User(
        name="Admin",
        email=config.ADMIN_EMAIL,
        password_hash=hash_password(config.ADMIN_PASSWORD),
        phone="1234567890",
        role="admin",
    )
    admin_id = create_document("user", admin)

    fake = Faker("en_IN")
    for _ in range(DEMO_CUSTOMERS):
        user = User(
            name=fake.name(),
            email=fake.unique.email(),
            password_hash=hash_password("Password@123"),
            phone=fake.numerify("9#########"),
        )
        create_document("user", user)

    category_ids = {}
    for c in DEMO_CATEGORIES:
        category_ids[c["slug"]] = create_document("category", Category(**c))

    products = 0
    for slug, items in DEMO_PRODUCTS.items():
        for p in items:
            create_document("product", Product(**p, category_id=category_ids[slug], seller_id=admin_id))
            products += 1

    stats = {"users": 1 + DEMO_CUSTOMERS, "categories": len(category_ids), "products": products}
    logger.info("Seeded demo data: {}", stats)
    return {"message": "Database seeded successfully!", "stats": stats}
