# timetable_bot/bot.py
import html
import logging
import os

import telebot
from dotenv import load_dotenv

from timetable_bot import ui
from timetable_bot.client import (api_add_task, api_delete_task, api_get_calendar, api_get_progress,
                                  api_get_task, api_get_tasks, api_toggle_task)

logger = logging.getLogger(__name__)

API_ERROR = "Error talking to the timetable API."


def create_bot(token, allowed_user_id=None, threaded=True):
    bot = telebot.TeleBot(token, parse_mode="HTML", threaded=threaded)
    user_states = {}
    # user_states[user_id] = {"expecting": None|"title_for_add",
    #                         "menu_message": {"chat_id":..., "message_id":...}}

    def allowed(user_id):
        return allowed_user_id is None or user_id == allowed_user_id

    def state_for(user_id):
        return user_states.setdefault(user_id, {"expecting": None, "menu_message": None})

    def show(mm, text, kb=None):
        bot.edit_message_text(text, chat_id=mm["chat_id"], message_id=mm["message_id"], reply_markup=kb)

    def show_today(mm):
        tasks = api_get_tasks()
        percent = api_get_progress()
        if tasks is None or percent is None:
            show(mm, API_ERROR, ui.back_kb())
            return
        show(mm, ui.today_text(tasks, percent), ui.tasks_list_kb(tasks))

    def show_task(mm, task_id, prefix=""):
        task = api_get_task(task_id)
        if task is None:
            show(mm, "Task not found.", ui.back_kb())
            return
        show(mm, prefix + ui.details_text(task), ui.task_action_kb(task_id, task.get("done_today")))

    def show_calendar(mm, task_id=None):
        res = api_get_calendar(task_id)
        if res is None:
            show(mm, API_ERROR, ui.back_kb())
            return
        title = None
        if task_id:
            task = api_get_task(task_id)
            title = task["title"] if task else None
        show(mm, ui.calendar_text(res["cells"], res["year"], res["month"], title=title), ui.back_kb())

    def send_menu(chat_id, st):
        sent = bot.send_message(chat_id, ui.MENU_TEXT, reply_markup=ui.main_menu())
        st["menu_message"] = {"chat_id": sent.chat.id, "message_id": sent.message_id}

    @bot.message_handler(commands=["start"])
    def start_cmd(message):
        if not allowed(message.from_user.id):
            return
        st = state_for(message.from_user.id)
        st["expecting"] = None
        send_menu(message.chat.id, st)

    @bot.callback_query_handler(func=lambda c: True)
    def callbacks(call):
        bot.answer_callback_query(call.id)
        if not allowed(call.from_user.id):
            return
        st = state_for(call.from_user.id)
        data = call.data
        mm = {"chat_id": call.message.chat.id, "message_id": call.message.message_id}
        st["menu_message"] = mm

        if data == "back":
            st["expecting"] = None
            show(mm, ui.MENU_TEXT, ui.main_menu())
        elif data == "help":
            show(mm, ui.HELP_TEXT, ui.back_kb())
        elif data == "today":
            show_today(mm)
        elif data == "add":
            st["expecting"] = "title_for_add"
            show(mm, "<b>New task</b>\n\nSend the task title as a normal message:", ui.back_kb())
        elif data == "calendar":
            show_calendar(mm)
        elif data.startswith("task:"):
            show_task(mm, data.split(":", 1)[1])
        elif data.startswith("cal:"):
            show_calendar(mm, data.split(":", 1)[1])
        elif data.startswith("tick:"):
            if api_toggle_task(data.split(":", 1)[1]) is None:
                show(mm, API_ERROR, ui.back_kb())
                return
            show_today(mm)
        elif data.startswith("do:"):
            task_id = data.split(":", 1)[1]
            res = api_toggle_task(task_id)
            if res is None:
                show(mm, API_ERROR, ui.back_kb())
                return
            prefix = "✔ Marked done.\n\n" if res.get("done") else "↩ Unmarked.\n\n"
            show_task(mm, task_id, prefix)
        elif data.startswith("del:"):
            task_id = data.split(":", 1)[1]
            if not api_delete_task(task_id):
                show(mm, API_ERROR, ui.back_kb())
                return
            show_today(mm)

    @bot.message_handler(func=lambda m: True)
    def plain_text_handler(message):
        if not allowed(message.from_user.id):
            return
        st = state_for(message.from_user.id)
        if st["expecting"] == "title_for_add":
            title = (message.text or "").strip()
            if not title:
                bot.reply_to(message, "The title is empty, send some text.")
                return
            task = api_add_task(title)
            if task is None:
                bot.send_message(message.chat.id, "Could not add the task.")
            else:
                bot.send_message(message.chat.id, f"✅ Added <b>{html.escape(task['title'])}</b>.")
            st["expecting"] = None
        send_menu(message.chat.id, st)

    return bot


def main():
    load_dotenv()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    allowed = os.getenv("ALLOWED_USER_ID")
    bot = create_bot(os.getenv("BOT_TOKEN"), int(allowed) if allowed else None)
    logger.info("Bot started")
    bot.infinity_polling()


if __name__ == "__main__":
    main()
