from resume_mailer.cli import main


if __name__ == "__main__":
    main(["serve"])
