import uvicorn
from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from .database import create_db_and_tables
from .api import (
    addresses, admin, auth, cart, categories, contact, customers, dashboard, notifications,
    orders, pages, products, site_settings, translate, upload, user, wishlist,
)
from .errors import configure_logging, register_exception_handlers
from .setup import create_initial_permissions_and_superadmin
from .database import engine
from .settings import get_settings

configure_logging(get_settings().log_level)

@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    create_initial_permissions_and_superadmin(engine)
    yield

app = FastAPI(title=get_settings().app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(admin.router)
app.include_router(categories.router)
app.include_router(products.router)
app.include_router(orders.router)
app.include_router(cart.router)
app.include_router(wishlist.router)
app.include_router(addresses.router)
app.include_router(user.router)
app.include_router(customers.router)
app.include_router(dashboard.router)
app.include_router(notifications.router)
app.include_router(site_settings.router)
app.include_router(pages.router)
app.include_router(contact.router)
app.include_router(translate.router)
app.include_router(upload.router)

@app.get("/")
def read_root():
    return {"success": True, "data": {"name": get_settings().app_name}}

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
