from yuandi import create_app

app = create_app()
