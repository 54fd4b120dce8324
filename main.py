from letter_logic.cli import run


if __name__ == "__main__":
    run()
