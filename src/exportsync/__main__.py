from exportsync.cli import app

app(prog_name="exportsync")
