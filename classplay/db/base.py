# classplay/db/base.py
# Import all the models, so that Base has them before create_all is called
from classplay.db.base_class import Base
from classplay.schemas.store_document import StoreDocument
from classplay.schemas.system import SystemAlert
