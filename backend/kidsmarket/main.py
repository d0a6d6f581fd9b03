import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .routers import health, listings, checkout, payments, transactions
from .mongo import MONGODB_DB_NAME, create_mongo_client, ensure_indexes
from .config import cors_origins, get_server_secret, load_server_config_from_mongo, webhook_tolerance
from .services.stripe_gateway import StripeGateway

app = FastAPI(title="Kids Marketplace API")
logger = logging.getLogger("uvicorn.error")

app.add_middleware(
	CORSMiddleware,
	allow_origins=cors_origins(),
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(listings.router, prefix="/listings", tags=["listings"])
app.include_router(checkout.router, prefix="/checkout", tags=["checkout"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])
app.include_router(transactions.router, prefix="/transactions", tags=["transactions"])


# Clients live for the whole process and are handed to routes through Depends
@app.on_event("startup")
async def on_startup():
	client = create_mongo_client()
	app.state.mongo_client = client
	app.state.mongo_db = client[MONGODB_DB_NAME] if client is not None else None
	mdb = app.state.mongo_db
	if mdb is None:
		logger.warning("MONGODB_URI not set; listing, checkout and webhook routes will be unavailable")
	else:
		try:
			await mdb.command("ping")
			# Load server config from Mongo before reading secrets
			try:
				await load_server_config_from_mongo(mdb)
			except Exception as ce:
				logger.warning("Loading server config failed: %s", ce)
			await ensure_indexes(mdb)
			logger.info("Database connected: MongoDB")
		except Exception as e:
			logger.warning("MongoDB startup checks failed: %s", e)

	app.state.stripe_gateway = StripeGateway(
		secret_key=get_server_secret("STRIPE_SECRET_KEY"),
		webhook_secret=get_server_secret("STRIPE_WEBHOOK_SECRET"),
		tolerance=webhook_tolerance(),
	)
	if not app.state.stripe_gateway.checkout_enabled:
		logger.warning("STRIPE_SECRET_KEY not set; checkout is disabled")


@app.on_event("shutdown")
async def on_shutdown():
	client = getattr(app.state, "mongo_client", None)
	if client is not None:
		client.close()


@app.get("/")
def read_root():
	return {"message": "Kids Marketplace API is running"}


if __name__ == "__main__":
	import uvicorn
	uvicorn.run(app, host="0.0.0.0", port=8000)
