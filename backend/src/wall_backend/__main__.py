from .cli import start_api


def main():
    start_api()


if __name__ == "__main__":
    main()
