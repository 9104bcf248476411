from app.jury import create_app

app = create_app()
