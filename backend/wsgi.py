from tripflow import create_app

app = create_app()
