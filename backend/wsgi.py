from stationery import create_app

app = create_app()
