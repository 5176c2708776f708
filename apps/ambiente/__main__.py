from ambiente.main import run

run()
