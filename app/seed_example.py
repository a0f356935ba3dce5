from sqlalchemy import select

from app.db import SessionLocal, engine
from app.models import Base, Category, Location, Product, Supplier
from app.services.catalog_service import create_category, create_location, create_product, create_supplier


def seed() -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        location = db.execute(select(Location).where(Location.name == 'Downtown')).scalar_one_or_none()
        if not location:
            create_location(db, name='Downtown', address='100 Main St')

        categories = {}
        for name, color in [('Coffee', '#6f4e37'), ('Dairy', '#f5f5dc'), ('Supplies', '#9e9e9e')]:
            category = db.execute(select(Category).where(Category.name == name)).scalar_one_or_none()
            categories[name] = category or create_category(db, name=name, color=color)

        suppliers = {}
        for name, email in [('Hilltop Roasters', 'orders@hilltop.example'), ('Valley Dairy', 'sales@valley.example')]:
            supplier = db.execute(select(Supplier).where(Supplier.name == name)).scalar_one_or_none()
            suppliers[name] = supplier or create_supplier(db, name=name, email=email)

        demo_products = [
            ('Beans', 'kg', 10, False, 'Coffee', 'Hilltop Roasters'),
            ('Whole Milk', 'L', 12, False, 'Dairy', 'Valley Dairy'),
            ('Oat Milk', 'L', 6, False, 'Dairy', 'Valley Dairy'),
            ('Napkins', 'pack', 0, True, 'Supplies', None),
            ('Cup Lids', 'sleeve', 4, False, 'Supplies', None),
        ]
        for name, unit, threshold, checkbox_only, category_name, supplier_name in demo_products:
            existing = db.execute(select(Product.id).where(Product.name == name)).scalar_one_or_none()
            if existing:
                continue
            create_product(
                db,
                name=name,
                unit=unit,
                minimum_threshold=threshold,
                checkbox_only=checkbox_only,
                category_ids=[categories[category_name].id],
                supplier_ids=[suppliers[supplier_name].id] if supplier_name else [],
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
